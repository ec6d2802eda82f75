"""
Chart pattern proposal generator

Double tops/bottoms, head and shoulders (regular and inverse), ascending,
descending and symmetric triangles and price channels.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..config.analysis_config import ChartAnalysisConfig
from ..preprocessing.data_processor import PriceArrays, PriceBar, bars_to_arrays
from ..utils.helpers import linear_regression
from .base import GeneratorKind, GeneratorParams, Priority, Proposal, ProposalGenerator, ProposalType
from .market_analyzer import detect_candle_patterns
from .styles import pattern_style

PATTERN_COMPLETENESS = 0.8

PATTERN_INFO: Dict[str, Tuple[str, str]] = {
    'double_top': ("Double top", "Bearish reversal pattern"),
    'double_bottom': ("Double bottom", "Bullish reversal pattern"),
    'head_shoulders': ("Head and shoulders", "Strong bearish reversal pattern"),
    'inverse_head_shoulders': ("Inverse head and shoulders", "Strong bullish reversal pattern"),
    'symmetric_triangle': ("Symmetric triangle", "Continuation pattern awaiting a breakout"),
    'ascending_triangle': ("Ascending triangle", "Bullish pattern favouring an upside breakout"),
    'descending_triangle': ("Descending triangle", "Bearish pattern favouring a downside breakout"),
    'ascending_channel': ("Ascending channel", "Uptrend continuation"),
    'descending_channel': ("Descending channel", "Downtrend continuation"),
}


@dataclass(frozen=True)
class DetectedPattern:
    type: str
    confidence: float
    start_index: int
    end_index: int
    key_points: Tuple[Tuple[int, float], ...]  # (time, price)
    implication: str  # 'bullish' | 'bearish' | 'neutral'

    def overlaps(self, other: "DetectedPattern") -> bool:
        return self.start_index <= other.end_index and other.start_index <= self.end_index


def _extreme_index(values: np.ndarray, start: int, end: int, highest: bool) -> Optional[int]:
    """Index of the max (or min) of ``values[start..end]`` inclusive"""
    start, end = max(0, start), min(len(values) - 1, end)
    if start > end:
        return None
    segment = values[start:end + 1]
    return start + int(np.argmax(segment) if highest else np.argmin(segment))


class PatternGenerator(ProposalGenerator):
    """
    Pattern variant of the proposal generators

    Reversal patterns are scored from key-bar volume, completeness and
    candle confirmation; triangles carry fixed scores and channels the mean
    R² of their bounding lines. Patterns below ``pattern_min_confidence``
    are dropped and overlapping detections of one type collapse to the
    best.
    """

    kind = GeneratorKind.PATTERN

    def _generate(self, bars: Sequence[PriceBar], params: GeneratorParams) -> List[Proposal]:
        arrays = bars_to_arrays(bars)
        detected = (
            self.detect_double_tops_bottoms(bars, arrays)
            + self.detect_head_and_shoulders(bars, arrays)
            + self.detect_triangles(bars, arrays)
            + self.detect_channels(bars, arrays)
        )
        valid = [p for p in detected if p.confidence >= self.config.detection.pattern_min_confidence]
        distinct = self._collapse_overlaps(valid)

        self.logger.debug(
            "Chart patterns detected",
            detected=len(detected),
            valid=len(valid),
            distinct=len(distinct)
        )

        proposals = []
        for pattern in distinct:
            proposal = self._create_proposal(pattern, params)
            if proposal is not None:
                proposals.append(proposal)
        return proposals

    def detect_double_tops_bottoms(
        self,
        bars: Sequence[PriceBar],
        arrays: PriceArrays,
        window: int = 20,
        tolerance: float = 0.02
    ) -> List[DetectedPattern]:
        patterns = []
        for center in range(window * 2, len(bars) - window):
            for top in (True, False):
                pattern = self._check_double(bars, arrays, center, window, tolerance, top)
                if pattern is not None:
                    patterns.append(pattern)
        return patterns

    def _check_double(
        self,
        bars: Sequence[PriceBar],
        arrays: PriceArrays,
        center: int,
        window: int,
        tolerance: float,
        top: bool
    ) -> Optional[DetectedPattern]:
        extremes = arrays.high if top else arrays.low
        first = _extreme_index(extremes, center - window, center, highest=top)
        second = _extreme_index(extremes, center, center + window, highest=top)
        if first is None or second is None or second - first < 2:
            return None

        first_price, second_price = extremes[first], extremes[second]
        if first_price <= 0 or abs(first_price - second_price) / first_price > tolerance:
            return None

        opposite = arrays.low if top else arrays.high
        neck = _extreme_index(opposite, first + 1, second - 1, highest=not top)
        if neck is None:
            return None

        average = (first_price + second_price) / 2
        height = average - opposite[neck] if top else opposite[neck] - average
        if height / average < 0.03:
            return None

        pattern_type = 'double_top' if top else 'double_bottom'
        key = (first, neck, second)
        return DetectedPattern(
            type=pattern_type,
            confidence=self.pattern_confidence(bars, arrays, key),
            start_index=first,
            end_index=second,
            key_points=(
                (bars[first].time, float(first_price)),
                (bars[neck].time, float(opposite[neck])),
                (bars[second].time, float(second_price)),
            ),
            implication='bearish' if top else 'bullish',
        )

    def detect_head_and_shoulders(
        self,
        bars: Sequence[PriceBar],
        arrays: PriceArrays,
        window: int = 15
    ) -> List[DetectedPattern]:
        patterns = []
        for center in range(window * 2, len(bars) - window * 2):
            for inverse in (False, True):
                pattern = self._check_head_and_shoulders(bars, arrays, center, window, inverse)
                if pattern is not None:
                    patterns.append(pattern)
        return patterns

    def _check_head_and_shoulders(
        self,
        bars: Sequence[PriceBar],
        arrays: PriceArrays,
        center: int,
        window: int,
        inverse: bool
    ) -> Optional[DetectedPattern]:
        prices = arrays.low if inverse else arrays.high
        highest = not inverse

        left = _extreme_index(prices, center - window * 2, center - window, highest)
        head = _extreme_index(prices, center - window // 2, center + window // 2, highest)
        right = _extreme_index(prices, center + window, center + window * 2, highest)
        if left is None or head is None or right is None:
            return None

        left_price, head_price, right_price = prices[left], prices[head], prices[right]
        if inverse and (head_price >= left_price or head_price >= right_price):
            return None
        if not inverse and (head_price <= left_price or head_price <= right_price):
            return None
        if left_price <= 0 or abs(left_price - right_price) / left_price > 0.02:
            return None

        key = (left, head, right)
        return DetectedPattern(
            type='inverse_head_shoulders' if inverse else 'head_shoulders',
            confidence=self.pattern_confidence(bars, arrays, key),
            start_index=left,
            end_index=right,
            key_points=tuple((bars[i].time, float(prices[i])) for i in key),
            implication='bullish' if inverse else 'bearish',
        )

    def detect_triangles(self, bars: Sequence[PriceBar], arrays: PriceArrays) -> List[DetectedPattern]:
        patterns = []
        for length in range(20, 61, 10):
            for end in range(length, len(bars) + 1):
                start = end - length
                highs, lows = arrays.high[start:end], arrays.low[start:end]
                x = np.arange(length)
                high_fit = linear_regression(x, highs)
                low_fit = linear_regression(x, lows)

                for pattern in (
                    self._symmetric_triangle(bars, start, end, high_fit, low_fit),
                    self._flat_sided_triangle(bars, arrays, start, end, low_fit, ascending=True),
                    self._flat_sided_triangle(bars, arrays, start, end, high_fit, ascending=False),
                ):
                    if pattern is not None:
                        patterns.append(pattern)
        return patterns

    @staticmethod
    def _symmetric_triangle(
        bars: Sequence[PriceBar],
        start: int,
        end: int,
        high_fit: Tuple[float, float, float],
        low_fit: Tuple[float, float, float]
    ) -> Optional[DetectedPattern]:
        high_slope, high_intercept, _ = high_fit
        low_slope, low_intercept, _ = low_fit
        if high_slope >= 0 or low_slope <= 0:
            return None
        if abs(high_slope) < 0.001 or abs(low_slope) < 0.001:
            return None

        length = end - start
        convergence = (low_intercept - high_intercept) / (high_slope - low_slope)
        if convergence < length * 0.8:
            return None

        return DetectedPattern(
            type='symmetric_triangle',
            confidence=0.7,
            start_index=start,
            end_index=end - 1,
            key_points=((bars[start].time, bars[start].high), (bars[end - 1].time, bars[end - 1].low)),
            implication='neutral',
        )

    @staticmethod
    def _flat_sided_triangle(
        bars: Sequence[PriceBar],
        arrays: PriceArrays,
        start: int,
        end: int,
        sloped_fit: Tuple[float, float, float],
        ascending: bool
    ) -> Optional[DetectedPattern]:
        """Flat highs with rising lows (ascending) or flat lows with falling highs"""
        flat = arrays.high[start:end] if ascending else arrays.low[start:end]
        average = float(flat.mean())
        if average <= 0 or float(flat.std()) / average > 0.01:
            return None

        slope, _, r_squared = sloped_fit
        if (slope <= 0 if ascending else slope >= 0) or r_squared < 0.7:
            return None

        last = end - 1
        if ascending:
            key_points = (
                (bars[start].time, average),
                (bars[start].time, bars[start].low),
                (bars[last].time, bars[last].low),
            )
        else:
            key_points = (
                (bars[start].time, bars[start].high),
                (bars[last].time, bars[last].high),
                (bars[start].time, average),
            )
        return DetectedPattern(
            type='ascending_triangle' if ascending else 'descending_triangle',
            confidence=0.75,
            start_index=start,
            end_index=last,
            key_points=key_points,
            implication='bullish' if ascending else 'bearish',
        )

    def detect_channels(
        self,
        bars: Sequence[PriceBar],
        arrays: PriceArrays,
        length: int = 30
    ) -> List[DetectedPattern]:
        patterns = []
        x = np.arange(length)
        for end in range(length, len(bars) + 1):
            start = end - length
            high_slope, _, high_r2 = linear_regression(x, arrays.high[start:end])
            low_slope, _, low_r2 = linear_regression(x, arrays.low[start:end])

            average_slope = abs(high_slope + low_slope) / 2
            if average_slope == 0 or abs(high_slope - low_slope) / average_slope > 0.2:
                continue
            if high_r2 < 0.8 or low_r2 < 0.8 or high_slope == 0:
                continue

            ascending = high_slope > 0
            last = end - 1
            patterns.append(DetectedPattern(
                type='ascending_channel' if ascending else 'descending_channel',
                confidence=(high_r2 + low_r2) / 2,
                start_index=start,
                end_index=last,
                key_points=(
                    (bars[start].time, bars[start].high),
                    (bars[last].time, bars[last].high),
                    (bars[start].time, bars[start].low),
                    (bars[last].time, bars[last].low),
                ),
                implication='bullish' if ascending else 'bearish',
            ))
        return patterns

    def pattern_confidence(
        self,
        bars: Sequence[PriceBar],
        arrays: PriceArrays,
        key_indices: Sequence[int]
    ) -> float:
        """
        0.6 base, +0.1 for key-bar volume above 1.5x average,
        +0.2 x completeness, +0.05 per key bar with a candle pattern;
        capped at 0.95
        """
        confidence = 0.6
        average_volume = float(arrays.volume.mean())
        key_volume = float(np.mean([arrays.volume[i] for i in key_indices]))
        if key_volume > average_volume * self.config.scoring.high_volume_ratio:
            confidence += 0.1

        confidence += PATTERN_COMPLETENESS * 0.2
        confidence += 0.05 * sum(1 for i in key_indices if detect_candle_patterns(bars, i))
        return min(confidence, 0.95)

    @staticmethod
    def _collapse_overlaps(patterns: Sequence[DetectedPattern]) -> List[DetectedPattern]:
        kept: List[DetectedPattern] = []
        for pattern in sorted(patterns, key=lambda p: p.confidence, reverse=True):
            if not any(k.type == pattern.type and k.overlaps(pattern) for k in kept):
                kept.append(pattern)
        return kept

    @staticmethod
    def _priority(confidence: float) -> Priority:
        if confidence >= 0.85:
            return Priority.HIGH
        if confidence >= 0.75:
            return Priority.MEDIUM
        return Priority.LOW

    def _create_proposal(self, pattern: DetectedPattern, params: GeneratorParams) -> Optional[Proposal]:
        title, description = PATTERN_INFO.get(pattern.type, (pattern.type, "Chart pattern"))
        duration = pattern.end_index - pattern.start_index
        key_points = [{'time': t, 'value': v} for t, v in pattern.key_points]

        outlook = {
            'bullish': "points to upside and may act as a buy signal",
            'bearish': "points to downside and may act as a sell signal",
        }.get(pattern.implication, "needs a confirmed breakout direction")
        reason = f"{title} formed over {duration} bars; it {outlook}"
        if pattern.confidence > 0.8:
            reason += ". Detected with high confidence"

        return self._build_proposal(
            id_prefix=f"pattern_{pattern.type}",
            proposal_type=ProposalType.PATTERN,
            points=key_points,
            style=pattern_style(pattern.implication),
            confidence=pattern.confidence,
            priority=self._priority(pattern.confidence),
            reason=reason,
            params=params,
            title=title,
            description=description,
            metadata={
                'patternType': pattern.type,
                'implication': pattern.implication,
                'keyPoints': key_points,
                'duration': duration,
            },
        )
