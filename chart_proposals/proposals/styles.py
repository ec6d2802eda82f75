"""
Default drawing styles for proposals

Colours and line settings handed to rendering collaborators as part of
each proposal's drawing payload.
"""

from dataclasses import dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class StylePalette:
    """Colour palette of the proposal drawings"""
    trend_up: str = "#00ff00"
    trend_down: str = "#ff0000"
    trend_neutral: str = "#888888"
    support: str = "#00ff00"
    resistance: str = "#ff0000"
    both: str = "#ffff00"
    fibonacci: str = "#ff9800"
    fibonacci_extension: str = "#9c27b0"
    pattern_bullish: str = "#4caf50"
    pattern_bearish: str = "#f44336"
    pattern_neutral: str = "#2196f3"


PALETTE = StylePalette()

# Fallback style per drawing type when a generator sends none
DEFAULT_STYLES: Dict[str, Dict[str, Any]] = {
    'trendline': {'color': PALETTE.trend_neutral, 'lineWidth': 2, 'lineStyle': 'solid', 'showLabels': True},
    'horizontal': {'color': PALETTE.both, 'lineWidth': 2, 'lineStyle': 'solid', 'showLabels': True},
    'fibonacci': {'color': PALETTE.fibonacci, 'lineWidth': 1, 'lineStyle': 'solid', 'showLabels': True},
    'pattern': {'color': PALETTE.pattern_neutral, 'lineWidth': 2, 'lineStyle': 'dashed', 'showLabels': True},
}


def default_style(drawing_type: str) -> Dict[str, Any]:
    """Copy of the fallback style for a drawing type"""
    return dict(DEFAULT_STYLES.get(drawing_type, DEFAULT_STYLES['trendline']))


def trendline_style(direction: str) -> Dict[str, Any]:
    color = {
        'up': PALETTE.trend_up,
        'down': PALETTE.trend_down,
    }.get(direction, PALETTE.trend_neutral)
    return {'color': color, 'lineWidth': 2, 'lineStyle': 'solid', 'showLabels': True}


def level_style(kind: str, strength: float) -> Dict[str, Any]:
    """
    Horizontal level style

    Width grows with strength (1 to 3); levels acting as both support and
    resistance are dashed.
    """
    color = {
        'support': PALETTE.support,
        'resistance': PALETTE.resistance,
    }.get(kind, PALETTE.both)
    return {
        'color': color,
        'lineWidth': min(3.0, 1.0 + strength * 2),
        'lineStyle': 'dashed' if kind == 'both' else 'solid',
        'showLabels': True,
    }


def fibonacci_style(extension: bool = False) -> Dict[str, Any]:
    color = PALETTE.fibonacci_extension if extension else PALETTE.fibonacci
    return {'color': color, 'lineWidth': 1, 'lineStyle': 'solid', 'showLabels': True}


def pattern_style(implication: str) -> Dict[str, Any]:
    color = {
        'bullish': PALETTE.pattern_bullish,
        'bearish': PALETTE.pattern_bearish,
    }.get(implication, PALETTE.pattern_neutral)
    return {'color': color, 'lineWidth': 2, 'lineStyle': 'dashed', 'showLabels': True}
