"""
Feature extraction for line quality prediction

Turns one detected line plus its price history into the 23-field
``LineFeatures`` record and its fixed-order normalized vector.
"""

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..preprocessing.data_processor import BarsInput, PriceBar, coerce_bars, resample_bars_by_factor
from ..proposals.base import ChartPoint, Proposal, ProposalType
from ..proposals.market_analyzer import detect_candle_patterns
from ..support_resistance.algorithms import PsychologicalLevelDetector
from ..utils.exceptions import FeatureExtractionException
from ..utils.helpers import clamp, linear_regression, safe_divide
from ..utils.logger import LoggerMixin

TOUCH_TOLERANCE_RATIO = 0.01
LINE_MATCH_TOLERANCE = 0.002
CONFLUENCE_TOLERANCE = 0.005
HIGHER_TIMEFRAME_FACTORS = (4, 16)
RECENT_AGE_FRACTION = 0.2
HTF_TREND_THRESHOLD = 0.01

# Normalized vector layout; consumers index into it by position
FEATURE_ORDER: Tuple[str, ...] = (
    "touchCount",
    "rSquared",
    "confidence",
    "wickTouchRatio",
    "bodyTouchRatio",
    "exactTouchRatio",
    "volumeAverage",
    "volumeMax",
    "volumeStrength",
    "ageInCandles",
    "recentTouchCount",
    "timeSinceLastTouch",
    "marketCondition",
    "trendStrength",
    "volatility",
    "timeOfDay",
    "dayOfWeek",
    "timeframeConfluence",
    "higherTimeframeAlignment",
    "nearPattern",
    "distanceFromPrice",
    "priceRoundness",
    "nearPsychological",
)

FEATURE_COUNT = len(FEATURE_ORDER)

FEATURE_RANGES: Dict[str, Tuple[float, float]] = {
    "touchCount": (2, 20),
    "volumeAverage": (0, 10000),
    "volumeMax": (0, 50000),
    "volumeStrength": (0, 5),
    "ageInCandles": (0, 500),
    "recentTouchCount": (0, 10),
    "timeSinceLastTouch": (0, 100),
    "trendStrength": (-1, 1),
    "timeOfDay": (0, 23),
    "dayOfWeek": (0, 6),
    "distanceFromPrice": (0, 0.1),
}

MARKET_CONDITION_SCORES = {"trending": 1.0, "ranging": 0.5, "volatile": 0.0}

FEATURE_IMPORTANCE: Dict[str, float] = {
    "touchCount": 0.25,
    "rSquared": 0.20,
    "volumeStrength": 0.15,
    "bodyTouchRatio": 0.10,
    "timeframeConfluence": 0.10,
    "marketCondition": 0.08,
    "recentTouchCount": 0.07,
    "nearPsychological": 0.05,
}


@dataclass(frozen=True)
class DetectedLine:
    """
    A drawn or proposed line handed to the quality predictor
    """
    id: str
    type: str  # 'horizontal' | 'trendline'
    price: Optional[float]
    confidence: float
    touch_points: Tuple[ChartPoint, ...]
    r_squared: Optional[float] = None
    supporting_timeframes: Tuple[str, ...] = ()

    @property
    def line_price(self) -> float:
        if self.price:
            return float(self.price)
        if self.touch_points:
            return float(self.touch_points[0].value)
        return 0.0

    @classmethod
    def from_proposal(cls, proposal: Proposal, bars: Sequence[PriceBar]) -> "DetectedLine":
        """
        Line of a horizontal or trendline proposal

        Horizontal lines are touched by the bars whose high or low lies within
        0.2% of the level; trendlines carry their anchor points.
        """
        if proposal.type == ProposalType.HORIZONTAL:
            price = float(proposal.price if proposal.price is not None else proposal.points[0].value)
            band = price * LINE_MATCH_TOLERANCE
            touches = []
            for bar in bars:
                if abs(bar.low - price) <= band:
                    touches.append(ChartPoint(time=bar.time, value=bar.low))
                elif abs(bar.high - price) <= band:
                    touches.append(ChartPoint(time=bar.time, value=bar.high))
            return cls(
                id=proposal.id,
                type="horizontal",
                price=price,
                confidence=proposal.confidence,
                touch_points=tuple(touches),
            )

        if proposal.type == ProposalType.TRENDLINE:
            statistics = proposal.metadata.get('statistics', {})
            return cls(
                id=proposal.id,
                type="trendline",
                price=float(proposal.points[-1].value),
                confidence=proposal.confidence,
                touch_points=tuple(proposal.points),
                r_squared=statistics.get('r_squared'),
            )

        raise FeatureExtractionException(
            f"Cannot build a line from a {proposal.type.value} proposal",
            line_id=proposal.id
        )


@dataclass(frozen=True)
class LineFeatures:
    """Quality signals of one line at one price snapshot"""
    # Basic
    touch_count: int
    r_squared: float
    confidence: float

    # Touch quality
    wick_touch_ratio: float
    body_touch_ratio: float
    exact_touch_ratio: float

    # Volume
    volume_average: float
    volume_max: float
    volume_strength: float

    # Time
    age_in_candles: int
    recent_touch_count: int
    time_since_last_touch: int

    # Market context
    market_condition: str
    trend_strength: float
    volatility: float
    time_of_day: int
    day_of_week: int

    # Multi-timeframe
    timeframe_confluence: float
    higher_timeframe_alignment: float

    # Patterns
    near_pattern: bool

    # Price context
    distance_from_price: float
    price_roundness: float
    near_psychological: bool

    pattern_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def named_values(self) -> Dict[str, Any]:
        """Raw values keyed by their ``FEATURE_ORDER`` name"""
        return {
            "touchCount": self.touch_count,
            "rSquared": self.r_squared,
            "confidence": self.confidence,
            "wickTouchRatio": self.wick_touch_ratio,
            "bodyTouchRatio": self.body_touch_ratio,
            "exactTouchRatio": self.exact_touch_ratio,
            "volumeAverage": self.volume_average,
            "volumeMax": self.volume_max,
            "volumeStrength": self.volume_strength,
            "ageInCandles": self.age_in_candles,
            "recentTouchCount": self.recent_touch_count,
            "timeSinceLastTouch": self.time_since_last_touch,
            "marketCondition": self.market_condition,
            "trendStrength": self.trend_strength,
            "volatility": self.volatility,
            "timeOfDay": self.time_of_day,
            "dayOfWeek": self.day_of_week,
            "timeframeConfluence": self.timeframe_confluence,
            "higherTimeframeAlignment": self.higher_timeframe_alignment,
            "nearPattern": self.near_pattern,
            "distanceFromPrice": self.distance_from_price,
            "priceRoundness": self.price_roundness,
            "nearPsychological": self.near_psychological,
        }


def _unit(value: Any, name: str) -> float:
    if name == "marketCondition":
        return MARKET_CONDITION_SCORES.get(str(value), 0.5)

    number = float(value) if value is not None else 0.0
    if not math.isfinite(number):
        return 0.0

    if name in FEATURE_RANGES:
        low, high = FEATURE_RANGES[name]
        number = (number - low) / (high - low)
    return clamp(number, 0.0, 1.0)


def normalize_features(features: LineFeatures) -> List[float]:
    """
    Fixed-order vector of ``FEATURE_COUNT`` values in [0, 1]

    Ranged fields are min-max scaled through ``FEATURE_RANGES``, ratios and
    flags pass through; every value is clamped and non-finite input maps to 0.
    """
    values = features.named_values()
    return [_unit(values[name], name) for name in FEATURE_ORDER]


class FeatureExtractor(LoggerMixin):
    """
    Extracts ``LineFeatures`` from a line and the bars it was drawn on

    Touch points are matched to bars by timestamp. Market context uses the
    20/50 close SMAs and the dispersion of the last 20 returns; higher
    timeframes are built by resampling the supplied bars.
    """

    def __init__(self):
        super().__init__()
        self.psychology = PsychologicalLevelDetector()

    def extract(
        self,
        line: DetectedLine,
        bars: BarsInput,
        current_price: Optional[float] = None
    ) -> LineFeatures:
        """
        Features of ``line`` at the last bar

        Args:
            line: Line to describe
            bars: Price history the line was drawn on
            current_price: Reference price (defaults to the last close)

        Returns:
            LineFeatures

        Raises:
            FeatureExtractionException: Empty history, unusable line price or
                a numeric failure while computing a feature
        """
        price_bars = coerce_bars(bars)
        if not price_bars:
            raise FeatureExtractionException("No price history supplied", line_id=line.id)

        line_price = line.line_price
        if line_price <= 0:
            raise FeatureExtractionException(
                "Line has no usable price",
                line_id=line.id
            )

        current_price = current_price if current_price else price_bars[-1].close

        try:
            frame = pd.DataFrame([b.to_dict() for b in price_bars])
            touch_indices = self._touch_indices(line, frame)

            wick, body, exact = self._touch_quality(line, frame, touch_indices, line_price)
            volume_average, volume_max, volume_strength = self._volume_features(frame, touch_indices, len(line.touch_points))
            age, recent, since_last = self._time_features(line, frame)
            condition, trend, volatility, hour, day = self._market_context(frame)
            confluence, alignment = self._timeframe_features(price_bars, line_price, current_price)
            pattern = self._nearby_pattern(price_bars, touch_indices)
        except (ValueError, KeyError, IndexError, ZeroDivisionError) as e:
            raise FeatureExtractionException(
                f"Feature extraction failed for line {line.id}: {e}",
                line_id=line.id,
                original_exception=e
            ) from e

        features = LineFeatures(
            touch_count=len(line.touch_points),
            r_squared=float(line.r_squared or 0.0),
            confidence=float(line.confidence),
            wick_touch_ratio=wick,
            body_touch_ratio=body,
            exact_touch_ratio=exact,
            volume_average=volume_average,
            volume_max=volume_max,
            volume_strength=volume_strength,
            age_in_candles=age,
            recent_touch_count=recent,
            time_since_last_touch=since_last,
            market_condition=condition,
            trend_strength=trend,
            volatility=volatility,
            time_of_day=hour,
            day_of_week=day,
            timeframe_confluence=confluence,
            higher_timeframe_alignment=alignment,
            near_pattern=pattern is not None,
            distance_from_price=safe_divide(abs(current_price - line_price), current_price, default=0.0),
            price_roundness=self.psychology.roundness(line_price),
            near_psychological=self.psychology.is_near_psychological(line_price),
            pattern_type=pattern,
        )

        self.logger.debug(
            "Line features extracted",
            line_id=line.id,
            touches=features.touch_count,
            market_condition=features.market_condition,
            confluence=features.timeframe_confluence
        )
        return features

    @staticmethod
    def _touch_indices(line: DetectedLine, frame: pd.DataFrame) -> List[Optional[int]]:
        """Bar index of each touch point, None when no bar has its time"""
        positions = pd.Series(np.arange(len(frame)), index=frame['time'].values)
        positions = positions[~positions.index.duplicated(keep='first')]
        return [
            int(positions[t.time]) if t.time in positions.index else None
            for t in line.touch_points
        ]

    @staticmethod
    def _touch_quality(
        line: DetectedLine,
        frame: pd.DataFrame,
        touch_indices: Sequence[Optional[int]],
        line_price: float
    ) -> Tuple[float, float, float]:
        wick = body = exact = 0
        for touch, index in zip(line.touch_points, touch_indices):
            if index is None:
                continue
            bar = frame.iloc[index]
            tolerance = (bar['high'] - bar['low']) * TOUCH_TOLERANCE_RATIO

            if abs(touch.value - bar['high']) < tolerance or abs(touch.value - bar['low']) < tolerance:
                wick += 1
            if min(bar['open'], bar['close']) <= touch.value <= max(bar['open'], bar['close']):
                body += 1
            if abs(touch.value - line_price) < tolerance:
                exact += 1

        total = len(line.touch_points)
        if total == 0:
            return 0.0, 0.0, 0.0
        return wick / total, body / total, exact / total

    @staticmethod
    def _volume_features(
        frame: pd.DataFrame,
        touch_indices: Sequence[Optional[int]],
        touch_count: int
    ) -> Tuple[float, float, float]:
        if touch_count == 0:
            return 0.0, 0.0, 1.0

        volumes = np.array([
            frame['volume'].iat[i] if i is not None else 0.0 for i in touch_indices
        ], dtype=float)
        average = float(volumes.mean())
        series_average = float(frame['volume'].mean())
        strength = average / series_average if series_average > 0 else 1.0
        return average, float(volumes.max()), strength

    @staticmethod
    def _time_features(line: DetectedLine, frame: pd.DataFrame) -> Tuple[int, int, int]:
        current_index = len(frame) - 1
        if not line.touch_points:
            return 0, 0, current_index

        times = frame['time'].to_numpy()
        first_touch = min(t.time for t in line.touch_points)
        last_touch = max(t.time for t in line.touch_points)
        current_time = int(times[-1])

        first_index = min(int(np.searchsorted(times, first_touch, side='left')), current_index)
        last_index = min(int(np.searchsorted(times, last_touch, side='left')), current_index)

        recent_threshold = current_time - (current_time - first_touch) * RECENT_AGE_FRACTION
        recent = sum(1 for t in line.touch_points if t.time >= recent_threshold)
        return current_index - first_index, recent, current_index - last_index

    @staticmethod
    def _market_context(frame: pd.DataFrame) -> Tuple[str, float, float, int, int]:
        closes = frame['close']

        trend = 0.0
        if len(closes) >= 50:
            sma20 = closes.iloc[-20:].mean()
            sma50 = closes.iloc[-50:].mean()
            if sma50 > 0:
                trend = clamp((sma20 - sma50) / sma50 * 10, -1.0, 1.0)

        returns = closes.iloc[-20:].pct_change().dropna()
        volatility = min(1.0, float(returns.std(ddof=0)) * 100) if len(returns) else 0.0
        if not math.isfinite(volatility):
            volatility = 0.0

        if volatility > 0.7:
            condition = "volatile"
        elif abs(trend) > 0.3:
            condition = "trending"
        else:
            condition = "ranging"

        last_time = pd.Timestamp(int(frame['time'].iat[-1]), unit='s', tz='UTC')
        # pandas counts Monday as 0; features count Sunday as 0
        day_of_week = (last_time.dayofweek + 1) % 7
        return condition, float(trend), volatility, int(last_time.hour), int(day_of_week)

    def _timeframe_features(
        self,
        bars: Sequence[PriceBar],
        line_price: float,
        current_price: float
    ) -> Tuple[float, float]:
        """Share of higher timeframes touching the line, and side/trend agreement"""
        higher = [resample_bars_by_factor(bars, factor) for factor in HIGHER_TIMEFRAME_FACTORS]

        band = line_price * CONFLUENCE_TOLERANCE
        hits = 0
        for htf_bars in higher:
            if any(abs(b.high - line_price) <= band or abs(b.low - line_price) <= band for b in htf_bars):
                hits += 1
        confluence = hits / len(higher)

        trend = self._higher_timeframe_trend(higher[0])
        if trend == 0:
            alignment = 0.5
        else:
            is_support = line_price <= current_price
            alignment = 1.0 if (trend > 0) == is_support else 0.0
        return confluence, alignment

    @staticmethod
    def _higher_timeframe_trend(bars: Sequence[PriceBar]) -> int:
        """+1 rising, -1 falling, 0 flat or too short"""
        if len(bars) < 3:
            return 0
        closes = np.array([b.close for b in bars], dtype=float)
        slope, _, _ = linear_regression(np.arange(len(closes), dtype=float), closes)
        change = safe_divide(slope * len(closes), float(closes.mean()), default=0.0)
        if change > HTF_TREND_THRESHOLD:
            return 1
        if change < -HTF_TREND_THRESHOLD:
            return -1
        return 0

    @staticmethod
    def _nearby_pattern(bars: Sequence[PriceBar], touch_indices: Sequence[Optional[int]]) -> Optional[str]:
        for index in touch_indices:
            if index is None:
                continue
            patterns = detect_candle_patterns(bars, index)
            if patterns:
                return patterns[0].value
        return None

    @staticmethod
    def get_feature_importance() -> Dict[str, float]:
        """Static importance weights used for reasoning"""
        return dict(FEATURE_IMPORTANCE)


def extract_features(
    line: DetectedLine,
    bars: BarsInput,
    symbol: str,
    current_price: Optional[float] = None,
    extractor: Optional[FeatureExtractor] = None
) -> LineFeatures:
    """
    Features of a line for ``symbol``

    Convenience wrapper around ``FeatureExtractor.extract`` that binds the
    symbol to the extractor's log context.
    """
    extractor = extractor or FeatureExtractor()
    extractor.set_log_context(symbol=symbol.upper())
    return extractor.extract(line, bars, current_price)
