"""
Helper utilities for the chart proposal engine.

Interval parsing, symbol validation, bounded arithmetic, regression and
formatting helpers shared by the generators and the ML pipeline.
"""

import re
import math
import time
import uuid
from typing import Union, Optional, Sequence, Tuple

import numpy as np
from scipy import stats

from .logger import get_logger
from .exceptions import InvalidDataException

logger = get_logger(__name__)

# Supported chart intervals in minutes
SUPPORTED_TIMEFRAMES = {
    "1m": 1, "3m": 3, "5m": 5, "15m": 15, "30m": 30,
    "1h": 60, "2h": 120, "4h": 240, "6h": 360, "8h": 480, "12h": 720,
    "1d": 1440, "3d": 4320, "1w": 10080, "1M": 43200
}

# Next timeframe up used for multi-timeframe confirmation
HIGHER_TIMEFRAMES = {
    "1m": "15m", "3m": "15m", "5m": "30m", "15m": "1h", "30m": "2h",
    "1h": "4h", "2h": "4h", "4h": "1d", "6h": "1d", "8h": "1d", "12h": "1d",
    "1d": "1w", "3d": "1w", "1w": "1M"
}

_SYMBOL_PATTERN = re.compile(r'^[A-Z0-9]{2,20}$')
_ID_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"


def normalize_symbol(symbol: str) -> str:
    """
    Normalize a trading pair symbol

    Args:
        symbol: Raw symbol, e.g. " btcusdt"

    Returns:
        Upper-cased symbol without whitespace or separators
    """
    if not isinstance(symbol, str):
        raise InvalidDataException(f"Symbol must be string, got {type(symbol)}")

    return symbol.upper().strip().replace("/", "").replace("-", "")


def validate_symbol(symbol: str, raise_error: bool = True) -> bool:
    """
    Validate a trading pair symbol

    Args:
        symbol: Symbol to check (e.g. "BTCUSDT")
        raise_error: Raise instead of returning False

    Returns:
        True if the symbol is well formed

    Raises:
        InvalidDataException: On malformed symbols (with raise_error=True)
    """
    if not isinstance(symbol, str):
        if raise_error:
            raise InvalidDataException(f"Symbol must be string, got {type(symbol)}")
        return False

    if not _SYMBOL_PATTERN.match(normalize_symbol(symbol)):
        if raise_error:
            raise InvalidDataException(f"Invalid symbol format: {symbol}")
        return False

    return True


def normalize_timeframe(timeframe: str) -> str:
    """
    Normalize an interval string

    "1M" (month) is the only case-sensitive interval and is kept as is.
    """
    if not isinstance(timeframe, str):
        raise InvalidDataException(f"Timeframe must be string, got {type(timeframe)}")

    timeframe = timeframe.strip()
    return timeframe if timeframe == "1M" else timeframe.lower()


def validate_timeframe(timeframe: str, raise_error: bool = True) -> bool:
    """
    Validate a chart interval

    Args:
        timeframe: Interval to check (e.g. "1h")
        raise_error: Raise instead of returning False

    Returns:
        True if the interval is supported

    Raises:
        InvalidDataException: On unsupported intervals
    """
    if not isinstance(timeframe, str) or normalize_timeframe(timeframe) not in SUPPORTED_TIMEFRAMES:
        if raise_error:
            raise InvalidDataException(
                f"Unsupported timeframe: {timeframe}. "
                f"Supported: {', '.join(SUPPORTED_TIMEFRAMES.keys())}"
            )
        return False

    return True


def parse_timeframe_to_minutes(timeframe: str) -> int:
    """
    Convert an interval to minutes

    Raises:
        InvalidDataException: On unsupported intervals
    """
    validate_timeframe(timeframe)
    return SUPPORTED_TIMEFRAMES[normalize_timeframe(timeframe)]


def get_higher_timeframe(timeframe: str) -> Optional[str]:
    """Next interval up, or None for the largest one"""
    return HIGHER_TIMEFRAMES.get(normalize_timeframe(timeframe))


def calculate_duration_hours(start_time: int, end_time: int) -> float:
    """Hours between two epoch-second timestamps"""
    return abs(end_time - start_time) / 3600.0


def safe_divide(
    numerator: Union[int, float],
    denominator: Union[int, float],
    default: Union[int, float, None] = None
) -> Union[float, None]:
    """
    Division that returns ``default`` instead of failing on zero

    Args:
        numerator: Numerator
        denominator: Denominator
        default: Value returned on zero or invalid denominators

    Returns:
        Quotient or default
    """
    try:
        if denominator == 0:
            return default
        result = float(numerator) / float(denominator)
    except (TypeError, ValueError, ZeroDivisionError):
        return default
    return result if math.isfinite(result) else default


def clamp(value: float, lower: float = 0.0, upper: float = 1.0) -> float:
    """Bound ``value`` to [lower, upper]; NaN maps to ``lower``"""
    if value is None or math.isnan(value):
        return lower
    return max(lower, min(upper, value))


def calculate_percentage_change(
    old_value: Union[int, float],
    new_value: Union[int, float]
) -> float:
    """
    Percentage change between two values

    Returns:
        Change in percent (0 when both are zero, inf when only old is zero)
    """
    if old_value == 0:
        return 0.0 if new_value == 0 else float('inf')

    return ((new_value - old_value) / abs(old_value)) * 100


def linear_regression(
    x: Sequence[float],
    y: Sequence[float]
) -> Tuple[float, float, float]:
    """
    Least squares line through (x, y)

    Returns:
        Tuple (slope, intercept, r_squared); r_squared is 0 when y is flat
        or fewer than two distinct x values are given
    """
    x_arr = np.asarray(x, dtype=float)
    y_arr = np.asarray(y, dtype=float)

    if len(x_arr) < 2 or np.ptp(x_arr) == 0:
        return 0.0, float(y_arr.mean()) if len(y_arr) else 0.0, 0.0

    if np.ptp(y_arr) == 0:
        return 0.0, float(y_arr[0]), 0.0

    result = stats.linregress(x_arr, y_arr)
    r_squared = float(result.rvalue ** 2)
    if not math.isfinite(r_squared):
        r_squared = 0.0
    return float(result.slope), float(result.intercept), r_squared


def generate_proposal_id(prefix: str) -> str:
    """
    Unique proposal id ``{prefix}_{epoch_ms}_{9 base36 chars}``

    The random part comes from uuid4 so ids created within the same
    millisecond still differ.
    """
    value = uuid.uuid4().int
    suffix = []
    for _ in range(9):
        value, remainder = divmod(value, 36)
        suffix.append(_ID_ALPHABET[remainder])
    return f"{prefix}_{int(time.time() * 1000)}_{''.join(suffix)}"


def format_price(price: Union[int, float]) -> str:
    """
    Format a price with a precision chosen from its magnitude
    """
    try:
        price = float(price)
    except (ValueError, TypeError):
        return "N/A"

    if price >= 1000:
        precision = 2
    elif price >= 1:
        precision = 4
    elif price >= 0.01:
        precision = 6
    else:
        precision = 8

    return f"{price:,.{precision}f}"
