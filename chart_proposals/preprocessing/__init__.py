"""
Price bar preprocessing
"""

from .data_processor import (
    PriceBar,
    PriceArrays,
    PriceDataProcessor,
    coerce_bars,
    bars_to_arrays,
    bars_to_frame,
    frame_to_bars,
    resample_bars,
    resample_bars_by_factor,
    validate_ohlcv_data
)

__all__ = [
    "PriceBar",
    "PriceArrays",
    "PriceDataProcessor",
    "coerce_bars",
    "bars_to_arrays",
    "bars_to_frame",
    "frame_to_bars",
    "resample_bars",
    "resample_bars_by_factor",
    "validate_ohlcv_data"
]
