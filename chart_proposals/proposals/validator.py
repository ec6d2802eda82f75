"""
Drawing data validation

Checks the drawing payload of a proposal before it leaves a generator and
fills in defaults (style per drawing type, standard Fibonacci levels).
"""

import math
import re
from typing import Any, Dict, List, Optional

from ..utils.exceptions import InvalidDataException
from .styles import default_style

DRAWING_TYPES = ('trendline', 'horizontal', 'fibonacci', 'pattern')
LINE_STYLES = ('solid', 'dashed', 'dotted')
DEFAULT_FIBONACCI_LEVELS = [0.0, 0.236, 0.382, 0.5, 0.618, 0.786, 1.0]

_COLOR_PATTERN = re.compile(r'^#[0-9a-fA-F]{6}$')
_TWO_POINT_TYPES = ('trendline', 'fibonacci')


def _is_positive_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value > 0
    )


def validate_drawing_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate and complete a drawing payload

    Args:
        data: Mapping with ``type``, ``points`` ({time, value} mappings),
            optional ``style``, ``price`` and ``levels``

    Returns:
        New payload with the style merged over the type default and
        ``levels`` filled in for Fibonacci drawings

    Raises:
        InvalidDataException: When any check fails; all failures are listed
            under ``validation_errors``
    """
    errors: Dict[str, str] = {}
    drawing_type = data.get('type')

    if drawing_type not in DRAWING_TYPES:
        errors['type'] = f"Unknown drawing type: {drawing_type}"

    points: List[Dict[str, Any]] = list(data.get('points') or [])
    if not points:
        errors['points'] = "At least one point is required"
    for i, point in enumerate(points):
        if not _is_positive_number(point.get('time')):
            errors[f'points[{i}].time'] = "Time must be a positive number"
        if not _is_positive_number(point.get('value')):
            errors[f'points[{i}].value'] = "Value must be a positive number"

    if drawing_type in _TWO_POINT_TYPES and len(points) != 2:
        errors['points'] = f"{drawing_type} requires exactly 2 points, got {len(points)}"

    price: Optional[float] = data.get('price')
    if drawing_type == 'horizontal' and not _is_positive_number(price):
        errors['price'] = "Horizontal line requires a positive price"

    style = default_style(drawing_type if drawing_type in DRAWING_TYPES else 'trendline')
    style.update(data.get('style') or {})

    if not isinstance(style['color'], str) or not _COLOR_PATTERN.match(style['color']):
        errors['style.color'] = f"Invalid color: {style['color']}"
    if not (isinstance(style['lineWidth'], (int, float)) and 1 <= style['lineWidth'] <= 10):
        errors['style.lineWidth'] = f"Line width must be within 1..10, got {style['lineWidth']}"
    if style['lineStyle'] not in LINE_STYLES:
        errors['style.lineStyle'] = f"Invalid line style: {style['lineStyle']}"

    if errors:
        raise InvalidDataException(
            "Invalid drawing data",
            validation_errors=errors,
            data_info={'type': drawing_type, 'points': len(points)}
        )

    levels = data.get('levels')
    if drawing_type == 'fibonacci' and not levels:
        levels = list(DEFAULT_FIBONACCI_LEVELS)

    return {
        'type': drawing_type,
        'points': [{'time': p['time'], 'value': p['value']} for p in points],
        'style': style,
        'price': float(price) if price is not None else None,
        'levels': list(levels) if levels is not None else None,
    }
