"""
Market condition analysis

Classifies the analysed bars as trending, ranging or volatile, compares
them with the next higher timeframe and recognises single-candle patterns
used as confirmation by the generators.
"""

from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..preprocessing.data_processor import PriceBar, bars_to_arrays, resample_bars
from ..utils.exceptions import ChartAnalysisException
from ..utils.helpers import get_higher_timeframe, linear_regression
from ..utils.logger import LoggerMixin
from .base import MarketCondition, MarketConditionType, MultiTimeframeAnalysis

HigherTimeframeProvider = Callable[[str], Sequence[PriceBar]]

MIN_CONDITION_BARS = 50
TRENDING_THRESHOLD = 0.7
VOLATILE_ATR_RATIO = 0.03
ATR_PERIOD = 14


class CandlePattern(str, Enum):
    BULLISH_PIN_BAR = "bullish_pin_bar"
    BEARISH_PIN_BAR = "bearish_pin_bar"
    BULLISH_ENGULFING = "bullish_engulfing"
    BEARISH_ENGULFING = "bearish_engulfing"


def detect_candle_patterns(bars: Sequence[PriceBar], index: int) -> List[CandlePattern]:
    """
    Candle patterns completed by the bar at ``index``

    Pin bars need a wick over 60% and a body under 30% of the bar range;
    engulfing bars need the opposite colour and a larger body that covers
    the previous body. Bars before index 2 never match.
    """
    patterns: List[CandlePattern] = []
    if index < 2 or index >= len(bars):
        return patterns

    current = bars[index]
    prev = bars[index - 1]

    body = abs(current.close - current.open)
    upper_wick = current.high - max(current.close, current.open)
    lower_wick = min(current.close, current.open) - current.low
    total_range = current.high - current.low

    if total_range > 0:
        if upper_wick / total_range > 0.6 and body / total_range < 0.3:
            patterns.append(CandlePattern.BEARISH_PIN_BAR)
        if lower_wick / total_range > 0.6 and body / total_range < 0.3:
            patterns.append(CandlePattern.BULLISH_PIN_BAR)

    prev_body = abs(prev.close - prev.open)
    if (prev.close < prev.open and current.close > current.open
            and current.open <= prev.close and current.close >= prev.open
            and body > prev_body):
        patterns.append(CandlePattern.BULLISH_ENGULFING)

    if (prev.close > prev.open and current.close < current.open
            and current.open >= prev.close and current.close <= prev.open
            and body > prev_body):
        patterns.append(CandlePattern.BEARISH_ENGULFING)

    return patterns


class MarketAnalyzer(LoggerMixin):
    """
    Market state of a bar window

    - trending: moving-average spread and regression slope above 0.7
    - volatile: ATR(14) above 3% of the latest close
    - ranging: otherwise, strength from the bars hugging the range extremes
    """

    def analyze_market_condition(self, bars: Sequence[PriceBar]) -> MarketCondition:
        if len(bars) < MIN_CONDITION_BARS:
            return MarketCondition(MarketConditionType.RANGING, 0.5)

        arrays = bars_to_arrays(bars)
        direction, trend_strength = self._analyze_trend(arrays.close)
        atr_ratio = self._normalized_atr(arrays.high, arrays.low, arrays.close)

        if trend_strength > TRENDING_THRESHOLD:
            condition = MarketCondition(MarketConditionType.TRENDING, trend_strength, direction)
        elif atr_ratio > VOLATILE_ATR_RATIO:
            condition = MarketCondition(MarketConditionType.VOLATILE, min(1.0, atr_ratio))
        else:
            condition = MarketCondition(
                MarketConditionType.RANGING,
                self._range_strength(arrays.high[-50:], arrays.low[-50:])
            )

        self.logger.debug(
            "Market condition analyzed",
            condition=condition.type.value,
            strength=round(condition.strength, 4),
            trend_strength=round(trend_strength, 4),
            atr_ratio=round(atr_ratio, 6)
        )
        return condition

    def analyze_multiple_timeframes(
        self,
        bars: Sequence[PriceBar],
        interval: str,
        provider: Optional[HigherTimeframeProvider] = None
    ) -> MultiTimeframeAnalysis:
        """
        Compare the bars with the next higher timeframe

        Args:
            bars: Bars of ``interval``
            interval: Interval of ``bars``
            provider: Source of higher-timeframe bars; resamples ``bars``
                when omitted

        Returns:
            Alignment summary; neutral when there is no higher timeframe or
            the higher-timeframe bars cannot be obtained
        """
        higher_interval = get_higher_timeframe(interval)
        if higher_interval is None or len(bars) == 0:
            return MultiTimeframeAnalysis(higher_timeframe=higher_interval)

        try:
            if provider is not None:
                higher_bars = list(provider(higher_interval))
            else:
                higher_bars = resample_bars(bars, higher_interval)
        except ChartAnalysisException as e:
            self.logger.error(
                "Multi-timeframe analysis failed",
                higher_timeframe=higher_interval,
                error=str(e)
            )
            return MultiTimeframeAnalysis(higher_timeframe=higher_interval)

        if not higher_bars:
            return MultiTimeframeAnalysis(higher_timeframe=higher_interval)

        higher = self.analyze_market_condition(higher_bars)
        current = self.analyze_market_condition(bars)
        both_trending = (
            higher.type == MarketConditionType.TRENDING
            and current.type == MarketConditionType.TRENDING
        )
        support, resistance = self._key_levels(higher_bars)

        return MultiTimeframeAnalysis(
            higher_timeframe=higher_interval,
            trend=higher.direction or "neutral",
            support=support,
            resistance=resistance,
            alignment=both_trending and higher.direction == current.direction,
            conflicting_signals=both_trending and higher.direction != current.direction,
        )

    @staticmethod
    def _analyze_trend(closes: np.ndarray) -> Tuple[str, float]:
        series = pd.Series(closes)
        ma20 = float(series.rolling(20).mean().iloc[-1])
        ma50 = float(series.rolling(50).mean().iloc[-1])
        price = float(closes[-1])

        if ma20 <= 0 or ma50 <= 0 or price <= 0:
            return "bullish", 0.0

        direction = "bullish" if ma20 > ma50 else "bearish"
        recent = closes[-50:]
        slope, _, _ = linear_regression(np.arange(len(recent)), recent)
        normalized_slope = abs(slope) / (price / 100)

        strength = min(1.0, (
            abs(price - ma20) / ma20 * 0.3
            + abs(ma20 - ma50) / ma50 * 0.3
            + normalized_slope * 0.4
        ))
        return direction, float(strength)

    @staticmethod
    def _normalized_atr(high: np.ndarray, low: np.ndarray, close: np.ndarray) -> float:
        if len(close) < ATR_PERIOD + 1 or close[-1] <= 0:
            return 0.0
        prev_close = close[:-1]
        true_range = np.maximum.reduce([
            high[1:] - low[1:],
            np.abs(high[1:] - prev_close),
            np.abs(low[1:] - prev_close),
        ])
        atr = pd.Series(true_range).rolling(ATR_PERIOD).mean().iloc[-1]
        return float(atr / close[-1])

    @staticmethod
    def _range_strength(highs: np.ndarray, lows: np.ndarray) -> float:
        max_high, min_low = float(highs.max()), float(lows.min())
        tolerance = (max_high - min_low) * 0.1
        bounces = int(np.sum(
            (np.abs(highs - max_high) < tolerance) | (np.abs(lows - min_low) < tolerance)
        ))
        return min(1.0, bounces / 10)

    @staticmethod
    def _key_levels(bars: Sequence[PriceBar]) -> Tuple[Tuple[float, ...], Tuple[float, ...]]:
        """Quartiles of the range: lowest as support, upper two as resistance"""
        max_high = max(b.high for b in bars)
        min_low = min(b.low for b in bars)
        step = (max_high - min_low) / 4
        quartiles = [min_low + step * i for i in range(1, 4)]
        return (quartiles[0],), tuple(quartiles[1:])
