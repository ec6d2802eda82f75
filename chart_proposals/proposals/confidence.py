"""
Confidence scoring shared by the proposal generators

Every score is bounded to [0, 1]. The dedicated trendline, level and
Fibonacci scores are additive rule sets; ``enhanced_confidence`` is the
weighted multi-factor blend applied on top of the trendline score.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from ..config.analysis_config import ScoringConfig, get_config
from ..preprocessing.data_processor import PriceBar, bars_to_arrays
from ..support_resistance.level_manager import PriceLevel
from ..utils.helpers import clamp, safe_divide
from ..utils.logger import LoggerMixin

MAJOR_FIBONACCI_LEVELS = (0.382, 0.5, 0.618)
LINE_TOUCH_TOLERANCE = 0.002


@dataclass(frozen=True)
class VolumeAnalysis:
    """Volume at a set of key bars relative to the whole series"""
    average_volume: float
    volume_ratio: float
    volume_trend: str  # 'increasing' | 'decreasing' | 'stable'
    significant_volume_bars: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'averageVolume': self.average_volume,
            'volumeRatio': self.volume_ratio,
            'volumeTrend': self.volume_trend,
            'significantVolumeBars': self.significant_volume_bars,
        }


@dataclass(frozen=True)
class ConfidenceFactors:
    """Raw inputs of the weighted confidence blend"""
    base_confidence: float
    touch_points: int
    volume_strength: float
    time_span: int
    r_squared: Optional[float] = None
    pattern_alignment: bool = False
    multi_timeframe_confirmation: bool = False
    recent_activity: bool = False
    outliers: int = 0


@dataclass(frozen=True)
class TrendlineScore:
    confidence: float
    touches: int
    volume_analysis: VolumeAnalysis
    patterns: List[str] = field(default_factory=list)


def count_line_touches(bars: Sequence[PriceBar], slope: float, intercept: float) -> int:
    """Bars whose high or low lies within 0.2% of ``slope * i + intercept``"""
    arrays = bars_to_arrays(bars)
    expected = slope * np.arange(len(arrays)) + intercept
    safe_expected = np.where(expected > 0, expected, np.nan)
    high_diff = np.abs(arrays.high - expected) / safe_expected
    low_diff = np.abs(arrays.low - expected) / safe_expected
    return int(np.sum((high_diff <= LINE_TOUCH_TOLERANCE) | (low_diff <= LINE_TOUCH_TOLERANCE)))


def analyze_volume(bars: Sequence[PriceBar], indices: Sequence[int], high_ratio: float = 1.5) -> VolumeAnalysis:
    """
    Volume profile of the bars at ``indices``

    The trend compares the later half of the key bars with the earlier
    half: more than 20% higher is increasing, more than 20% lower
    decreasing.
    """
    volumes = np.array([bars[i].volume for i in indices], dtype=float)
    overall = float(np.mean([b.volume for b in bars])) if bars else 0.0
    average = float(volumes.mean()) if len(volumes) else 0.0

    trend = "stable"
    if len(volumes) > 1:
        half = len(volumes) // 2
        first, second = volumes[:half].mean(), volumes[half:].mean()
        if second > first * 1.2:
            trend = "increasing"
        elif second < first * 0.8:
            trend = "decreasing"

    return VolumeAnalysis(
        average_volume=average,
        volume_ratio=safe_divide(average, overall, default=1.0),
        volume_trend=trend,
        significant_volume_bars=int(np.sum(volumes > overall * high_ratio)),
    )


def trend_clarity(closes: Sequence[float]) -> float:
    """
    Share of the close-to-close movement that agrees with the overall
    direction of the segment; 0 for flat segments
    """
    values = np.asarray(closes, dtype=float)
    if len(values) < 2:
        return 0.0
    diffs = np.diff(values)
    direction = np.sign(values[-1] - values[0])
    total = np.abs(diffs).sum()
    if direction == 0 or total == 0:
        return 0.0
    return float(np.abs(diffs[np.sign(diffs) == direction]).sum() / total)


class ConfidenceScorer(LoggerMixin):
    """
    Confidence rules of the generators
    """

    def __init__(self, config: Optional[ScoringConfig] = None, recent_candles: Optional[int] = None):
        super().__init__()
        self.config = config or get_config().scoring
        self.recent_candles = recent_candles or get_config().detection.recent_candles

    def enhanced_confidence(self, factors: ConfidenceFactors) -> float:
        """
        Weighted blend of the normalised factors

        Touches saturate at 10, the time span at 100 bars; each outlier
        removes 3% up to a full penalty at about 33 outliers.
        """
        weights = self.config.confidence_weights
        normalized = {
            'base': factors.base_confidence,
            'touches': min(factors.touch_points / 10, 1.0),
            'volume': min(factors.volume_strength, 1.0),
            'timespan': min(factors.time_span / 100, 1.0),
            'r_squared': factors.r_squared or 0.0,
            'pattern': 1.0 if factors.pattern_alignment else 0.0,
            'mtf_alignment': 1.0 if factors.multi_timeframe_confirmation else 0.0,
            'recent_activity': 1.0 if factors.recent_activity else 0.0,
        }
        weighted_sum = sum(normalized[name] * weights.get(name, 0.0) for name in normalized)

        outlier_penalty = max(0.0, 1 - (factors.outliers / 10) * 0.3) if factors.outliers else 1.0
        confidence = clamp(weighted_sum * outlier_penalty)

        self.logger.debug(
            "Enhanced confidence calculated",
            weighted_sum=round(weighted_sum, 4),
            outlier_penalty=round(outlier_penalty, 4),
            confidence=round(confidence, 4)
        )
        return confidence

    def trendline_confidence(
        self,
        bars: Sequence[PriceBar],
        anchor_indices: Sequence[int],
        slope: float,
        intercept: float,
        r_squared: float,
        patterns: Sequence[str] = ()
    ) -> TrendlineScore:
        touches = count_line_touches(bars, slope, intercept)
        volume = analyze_volume(bars, anchor_indices, self.config.high_volume_ratio)

        confidence = 0.3
        confidence += 0.1 * sum(touches >= t for t in (3, 5, 7))
        if r_squared >= self.config.acceptable_fit_r_squared:
            confidence += 0.1
        if r_squared >= self.config.good_fit_r_squared:
            confidence += 0.1
        if volume.volume_ratio > self.config.high_volume_ratio:
            confidence += 0.1
        if volume.volume_trend == "increasing":
            confidence += 0.05
        confidence += 0.05 * min(len(patterns), 2)

        return TrendlineScore(
            confidence=min(confidence, 1.0),
            touches=touches,
            volume_analysis=volume,
            patterns=list(patterns),
        )

    def support_resistance_confidence(self, level: PriceLevel, bars: Sequence[PriceBar]) -> float:
        """
        Level score: touch count, touch volume, recent touches and how
        tightly the touches sit on the level price
        """
        confidence = 0.4
        touches = level.touch_count
        if touches >= 3:
            confidence += 0.15
        if touches >= 5:
            confidence += 0.1
        if touches >= 7:
            confidence += 0.05

        if touches and bars:
            average_volume = float(np.mean([b.volume for b in bars]))
            touch_volume = float(np.mean([t.volume for t in level.touches]))
            if safe_divide(touch_volume, average_volume, default=0.0) > self.config.high_volume_ratio:
                confidence += 0.1

            recent_start = bars[max(0, len(bars) - self.recent_candles)].time
            if any(t.time >= recent_start for t in level.touches):
                confidence += 0.1

        if self.bounce_accuracy(level) > 0.95:
            confidence += 0.1

        return min(confidence, 1.0)

    @staticmethod
    def bounce_accuracy(level: PriceLevel) -> float:
        """1 for touches exactly on the level, 0 at an average 10% deviation"""
        if not level.touches or level.price == 0:
            return 0.0
        deviation = np.mean([abs(t.price - level.price) / abs(level.price) for t in level.touches])
        return max(0.0, 1 - float(deviation) * 10)

    def fibonacci_confidence(
        self,
        swing_high: float,
        swing_low: float,
        current_price: float,
        clarity: float,
        volume_confirmed: bool
    ) -> float:
        """
        Higher when the latest close sits near a major retracement level
        (0.382, 0.5, 0.618), the swing is clean and confirmed by volume
        """
        price_range = swing_high - swing_low
        if price_range <= 0:
            return 0.0

        retracement = (swing_high - current_price) / price_range
        proximity = min(abs(retracement - level) for level in MAJOR_FIBONACCI_LEVELS)

        confidence = 0.5
        if proximity < 0.02:
            confidence += 0.2
        elif proximity < 0.05:
            confidence += 0.1
        confidence += clamp(clarity) * 0.2
        if volume_confirmed:
            confidence += 0.1

        return min(confidence, 1.0)
