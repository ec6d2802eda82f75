"""
Price bar preprocessing for the chart proposal engine.

Converts bar sequences coming from market-data collaborators into the
immutable ``PriceBar`` type, numpy column arrays and pandas DataFrames,
validates OHLCV consistency and resamples bars to higher timeframes.
"""

from dataclasses import dataclass, asdict
from typing import Dict, List, Optional, Sequence, Union, Any, Iterable

import numpy as np
import pandas as pd

from ..utils.logger import get_logger, LoggerMixin
from ..utils.exceptions import InvalidDataException, InsufficientDataException, handle_analysis_exception
from ..utils.helpers import normalize_symbol, normalize_timeframe, parse_timeframe_to_minutes, validate_timeframe

logger = get_logger(__name__)

OHLCV_COLUMNS = ['open', 'high', 'low', 'close', 'volume']


@dataclass(frozen=True)
class PriceBar:
    """
    One OHLCV candle; ``time`` is in epoch seconds
    """
    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PriceBar":
        """Build a bar from a mapping; accepts ``timestamp`` for ``time``"""
        try:
            time_value = data['time'] if 'time' in data else data['timestamp']
            return cls(
                time=int(time_value),
                open=float(data['open']),
                high=float(data['high']),
                low=float(data['low']),
                close=float(data['close']),
                volume=float(data.get('volume', 0.0)),
            )
        except KeyError as e:
            raise InvalidDataException(
                f"Missing required bar field: {e}",
                data_info={'keys': sorted(data.keys())},
                original_exception=e
            ) from e


@dataclass(frozen=True)
class PriceArrays:
    """
    Column view of a bar sequence as float numpy arrays
    """
    time: np.ndarray
    open: np.ndarray
    high: np.ndarray
    low: np.ndarray
    close: np.ndarray
    volume: np.ndarray

    def __len__(self) -> int:
        return len(self.close)


BarsInput = Union[Sequence[PriceBar], Sequence[Dict[str, Any]], pd.DataFrame]


def coerce_bars(data: BarsInput) -> List[PriceBar]:
    """
    Convert supported inputs to a list of ``PriceBar``

    Args:
        data: PriceBar sequence, list of mappings or OHLCV DataFrame

    Returns:
        List of bars in the input order
    """
    if isinstance(data, pd.DataFrame):
        return frame_to_bars(data)

    bars: List[PriceBar] = []
    for item in data:
        if isinstance(item, PriceBar):
            bars.append(item)
        elif isinstance(item, dict):
            bars.append(PriceBar.from_dict(item))
        else:
            raise InvalidDataException(f"Unsupported bar type: {type(item).__name__}")
    return bars


def bars_to_arrays(bars: Sequence[PriceBar]) -> PriceArrays:
    """Column arrays of a bar sequence"""
    return PriceArrays(
        time=np.fromiter((b.time for b in bars), dtype=np.int64, count=len(bars)),
        open=np.fromiter((b.open for b in bars), dtype=float, count=len(bars)),
        high=np.fromiter((b.high for b in bars), dtype=float, count=len(bars)),
        low=np.fromiter((b.low for b in bars), dtype=float, count=len(bars)),
        close=np.fromiter((b.close for b in bars), dtype=float, count=len(bars)),
        volume=np.fromiter((b.volume for b in bars), dtype=float, count=len(bars)),
    )


def bars_to_frame(bars: Sequence[PriceBar]) -> pd.DataFrame:
    """
    DataFrame indexed by UTC timestamp with OHLCV columns and ``time``

    Raises:
        InsufficientDataException: For an empty sequence
    """
    if len(bars) == 0:
        raise InsufficientDataException("No bars supplied", required_samples=1, provided_samples=0)

    df = pd.DataFrame([b.to_dict() for b in bars])
    df.index = pd.to_datetime(df['time'], unit='s', utc=True)
    df.index.name = 'timestamp'
    return df


def frame_to_bars(df: pd.DataFrame) -> List[PriceBar]:
    """
    Bars from an OHLCV DataFrame

    The timestamp is taken from a ``time`` column (epoch seconds), a
    ``timestamp`` column or a DatetimeIndex, in that order.
    """
    validate_ohlcv_data(df)

    if 'time' in df.columns:
        times = df['time'].astype('int64').to_numpy()
    elif 'timestamp' in df.columns:
        times = _datetimes_to_seconds(pd.to_datetime(df['timestamp'], utc=True))
    elif isinstance(df.index, pd.DatetimeIndex):
        times = _datetimes_to_seconds(df.index)
    else:
        raise InvalidDataException("DataFrame has no time column or DatetimeIndex")

    return [
        PriceBar(int(t), float(o), float(h), float(lo), float(c), float(v))
        for t, o, h, lo, c, v in zip(
            times, df['open'], df['high'], df['low'], df['close'], df['volume']
        )
    ]


def _datetimes_to_seconds(values: Iterable) -> np.ndarray:
    index = pd.DatetimeIndex(values)
    if index.tz is None:
        index = index.tz_localize('UTC')
    return ((index - pd.Timestamp(0, tz='UTC')) // pd.Timedelta(seconds=1)).to_numpy(dtype=np.int64)


def validate_ohlcv_data(df: pd.DataFrame, required_cols: Optional[List[str]] = None) -> bool:
    """
    Validate OHLCV data

    Args:
        df: Data to check
        required_cols: Required columns (OHLCV by default)

    Returns:
        True when the data is valid

    Raises:
        InvalidDataException: On invalid data
    """
    if required_cols is None:
        required_cols = OHLCV_COLUMNS

    missing_cols = [col for col in required_cols if col not in df.columns]
    if missing_cols:
        raise InvalidDataException(f"Missing required columns: {missing_cols}")

    if df.empty:
        raise InvalidDataException("DataFrame is empty")

    for col in OHLCV_COLUMNS:
        if col in df.columns and not pd.api.types.is_numeric_dtype(df[col]):
            raise InvalidDataException(f"Column {col} must be numeric")

    if (df['high'] < df[['open', 'close']].max(axis=1)).any():
        raise InvalidDataException("High price must be >= max(open, close)")

    if (df['low'] > df[['open', 'close']].min(axis=1)).any():
        raise InvalidDataException("Low price must be <= min(open, close)")

    for col in OHLCV_COLUMNS:
        if col in df.columns and (df[col] < 0).any():
            raise InvalidDataException(f"Column {col} contains negative values")

    return True


def resample_bars(bars: Sequence[PriceBar], interval: str) -> List[PriceBar]:
    """
    Aggregate bars into a coarser interval

    Args:
        bars: Source bars (any finer interval)
        interval: Target interval, e.g. "4h"

    Returns:
        Aggregated bars; incomplete buckets are kept
    """
    if len(bars) == 0:
        return []

    return _aggregate(bars, f"{parse_timeframe_to_minutes(interval)}min")


def resample_bars_by_factor(bars: Sequence[PriceBar], factor: int) -> List[PriceBar]:
    """
    Aggregate bars into buckets ``factor`` times the median bar spacing

    Used when the source interval is unknown. Sequences too short to infer
    a spacing are returned unchanged.
    """
    if len(bars) < 2 or factor <= 1:
        return list(bars)

    spacing = float(np.median(np.diff([b.time for b in bars])))
    if spacing <= 0:
        return list(bars)

    return _aggregate(bars, f"{int(spacing * factor)}s")


def _aggregate(bars: Sequence[PriceBar], rule: str) -> List[PriceBar]:
    df = bars_to_frame(bars)
    aggregated = df.resample(rule, label='left', closed='left').agg({
        'time': 'first',
        'open': 'first',
        'high': 'max',
        'low': 'min',
        'close': 'last',
        'volume': 'sum',
    }).dropna(subset=['open'])

    # Bucket start time rather than the first member bar's time
    aggregated['time'] = _datetimes_to_seconds(aggregated.index)
    return frame_to_bars(aggregated)


class PriceDataProcessor(LoggerMixin):
    """
    Prepares incoming bar data for one analysis request

    - converts any supported input into ``PriceBar`` values
    - sorts bars by time and drops duplicate timestamps
    - validates OHLC relations
    """

    def __init__(self, symbol: str, interval: str = "1h"):
        super().__init__()
        validate_timeframe(interval)
        self.symbol = normalize_symbol(symbol)
        self.interval = normalize_timeframe(interval)
        self.set_log_context(symbol=self.symbol, interval=self.interval)

    @handle_analysis_exception
    def process(self, data: BarsInput) -> List[PriceBar]:
        """
        Validated, time-ordered bars

        Raises:
            InvalidDataException: On malformed bars
        """
        bars = coerce_bars(data)
        if not bars:
            return []

        df = pd.DataFrame([b.to_dict() for b in bars])
        validate_ohlcv_data(df)

        duplicates = int(df['time'].duplicated(keep='last').sum())
        df = df.drop_duplicates(subset='time', keep='last').sort_values('time')
        if duplicates:
            self.logger.warning("Dropped bars with duplicate timestamps", duplicates=duplicates)

        return frame_to_bars(df.reset_index(drop=True))
