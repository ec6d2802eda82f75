"""
Trendline proposal generator

Uptrend lines join swing lows, downtrend lines join swing highs. Anchor
pairs are ranked by span, volume weight and recency; the best pairs are
refitted by least squares over the bars hugging the anchor line and scored
with the trendline rules plus the weighted confidence blend.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from ..config.analysis_config import ChartAnalysisConfig
from ..preprocessing.data_processor import PriceBar, PriceArrays, bars_to_arrays
from ..support_resistance.algorithms import SwingKind, SwingPoint, SwingPointDetector
from ..utils.helpers import calculate_duration_hours, calculate_percentage_change, linear_regression
from .base import GeneratorKind, GeneratorParams, Priority, Proposal, ProposalGenerator, ProposalType
from .confidence import ConfidenceFactors, ConfidenceScorer, TrendlineScore
from .market_analyzer import detect_candle_patterns
from .styles import trendline_style


@dataclass(frozen=True)
class WeightedSwing:
    point: SwingPoint
    volume_weight: float


@dataclass(frozen=True)
class TrendlineCandidate:
    start: WeightedSwing
    end: WeightedSwing
    score: float
    direction: str  # 'up' | 'down'

    @property
    def span(self) -> int:
        return self.end.point.index - self.start.point.index


@dataclass(frozen=True)
class LineFit:
    slope: float
    intercept: float
    r_squared: float
    points: int


class TrendlineGenerator(ProposalGenerator):
    """
    Trendline variant of the proposal generators
    """

    kind = GeneratorKind.TRENDLINE

    def __init__(self, config: Optional[ChartAnalysisConfig] = None):
        super().__init__(config)
        self.detection = self.config.detection
        self.swing_detector = SwingPointDetector(self.detection)
        self.scorer = ConfidenceScorer(self.config.scoring, self.detection.recent_candles)

    def _generate(self, bars: Sequence[PriceBar], params: GeneratorParams) -> List[Proposal]:
        arrays = bars_to_arrays(bars)
        price_range = float(arrays.high.max() - arrays.low.min())
        tolerance = price_range * self.detection.trendline_fit_tolerance

        swings = self.find_weighted_swings(bars)
        troughs = [s for s in swings if s.point.kind == SwingKind.LOW]
        peaks = [s for s in swings if s.point.kind == SwingKind.HIGH]

        proposals: List[Proposal] = []
        for direction, anchors in (("up", troughs), ("down", peaks)):
            if len(anchors) < self.detection.trendline_min_points:
                self.logger.debug(
                    "Not enough swing points for trendlines",
                    direction=direction,
                    swings=len(anchors)
                )
                continue

            for candidate in self.evaluate_candidates(len(bars), anchors, direction):
                proposal = self._build_trendline(bars, arrays, candidate, tolerance, params)
                if proposal is not None:
                    proposals.append(proposal)

        return proposals

    def find_weighted_swings(self, bars: Sequence[PriceBar]) -> List[WeightedSwing]:
        """Swing points with ``volume_weight = min(volume / average volume, 3)``"""
        average_volume = float(np.mean([b.volume for b in bars]))
        weighted = []
        for point in self.swing_detector.detect(bars, self.detection.peak_window_size):
            weight = min(bars[point.index].volume / average_volume, 3.0) if average_volume > 0 else 1.0
            weighted.append(WeightedSwing(point, weight))
        return weighted

    def evaluate_candidates(
        self,
        bar_count: int,
        anchors: Sequence[WeightedSwing],
        direction: str
    ) -> List[TrendlineCandidate]:
        """Best anchor pairs with a span inside the configured bounds"""
        weights = self.config.scoring.trendline_weights
        candidates = []

        for i, start in enumerate(anchors[:-1]):
            for end in anchors[i + 1:]:
                span = end.point.index - start.point.index
                if span < self.detection.trendline_min_span or span > self.detection.trendline_max_span:
                    continue

                recency = 1.2 if bar_count - end.point.index <= self.detection.recent_candles else 1.0
                score = (
                    min(span / 50, 2.0) * weights['time_span']
                    + (start.volume_weight + end.volume_weight) / 2 * weights['volume']
                    + recency * weights['recency']
                )
                candidates.append(TrendlineCandidate(start, end, score, direction))

        candidates.sort(key=lambda c: c.score, reverse=True)
        return candidates[:self.detection.trendline_candidates]

    @staticmethod
    def fit_line(prices: np.ndarray, start: int, end: int, tolerance: float) -> LineFit:
        """
        Least squares fit over the bars between the anchors that lie within
        ``tolerance`` of the straight anchor line; anchors always count
        """
        indices = np.arange(start, end + 1)
        anchor_line = prices[start] + (prices[end] - prices[start]) * (indices - start) / (end - start)
        near = np.abs(prices[start:end + 1] - anchor_line) <= tolerance
        near[0] = near[-1] = True

        xs = indices[near]
        slope, intercept, r_squared = linear_regression(xs, prices[xs])
        return LineFit(slope, intercept, r_squared, int(near.sum()))

    def _build_trendline(
        self,
        bars: Sequence[PriceBar],
        arrays: PriceArrays,
        candidate: TrendlineCandidate,
        tolerance: float,
        params: GeneratorParams
    ) -> Optional[Proposal]:
        start, end = candidate.start.point.index, candidate.end.point.index
        uptrend = candidate.direction == "up"
        prices = arrays.low if uptrend else arrays.high

        fit = self.fit_line(prices, start, end, tolerance)
        patterns = [
            pattern.value
            for index in (start, end)
            for pattern in detect_candle_patterns(bars, index)
        ]
        score = self.scorer.trendline_confidence(
            bars, (start, end), fit.slope, fit.intercept, fit.r_squared, patterns
        )

        expected = fit.slope * np.arange(start, end + 1) + fit.intercept
        segment = prices[start:end + 1]
        breaches = segment < expected - tolerance if uptrend else segment > expected + tolerance
        outliers = int(breaches.sum())

        factors = ConfidenceFactors(
            base_confidence=score.confidence,
            touch_points=score.touches,
            volume_strength=score.volume_analysis.volume_ratio,
            time_span=candidate.span,
            r_squared=fit.r_squared,
            pattern_alignment=bool(patterns),
            multi_timeframe_confirmation=params.mtf_aligned,
            recent_activity=len(bars) - end <= self.detection.recent_candles,
            outliers=outliers,
        )
        confidence = self.scorer.enhanced_confidence(factors)

        start_price, end_price = float(prices[start]), float(prices[end])
        angle = abs(fit.slope * 100)
        statistics = {
            'points': candidate.span + 1,
            'touches': score.touches,
            'outliers': outliers,
            'r_squared': fit.r_squared,
            'angle': angle,
            'duration_hours': calculate_duration_hours(bars[start].time, bars[end].time),
            'price_change_percent': calculate_percentage_change(start_price, end_price),
        }
        label = "Uptrend" if uptrend else "Downtrend"

        return self._build_proposal(
            id_prefix="tl_up" if uptrend else "tl_down",
            proposal_type=ProposalType.TRENDLINE,
            points=[
                {'time': bars[start].time, 'value': start_price},
                {'time': bars[end].time, 'value': end_price},
            ],
            style=trendline_style(candidate.direction),
            confidence=confidence,
            priority=self._priority(confidence, factors),
            reason=self._reason(candidate, fit, score, factors),
            params=params,
            title=f"{label} line",
            description=f"{label} line with {score.touches} touches, confidence {confidence:.0%}",
            metadata={
                'direction': candidate.direction,
                'touches': score.touches,
                'volumeAnalysis': score.volume_analysis.to_dict(),
                'patterns': patterns,
                'statistics': statistics,
            },
        )

    def _priority(self, confidence: float, factors: ConfidenceFactors) -> Priority:
        scoring = self.config.scoring
        if (confidence >= scoring.high_confidence and factors.touch_points >= 5
                and factors.recent_activity and factors.multi_timeframe_confirmation):
            return Priority.HIGH
        if confidence >= scoring.min_confidence and factors.touch_points >= 3:
            return Priority.MEDIUM
        return Priority.LOW

    def _reason(
        self,
        candidate: TrendlineCandidate,
        fit: LineFit,
        score: TrendlineScore,
        factors: ConfidenceFactors
    ) -> str:
        scoring = self.config.scoring
        if factors.base_confidence > scoring.high_confidence:
            strength = "strong"
        elif factors.base_confidence > scoring.min_confidence:
            strength = "moderate"
        else:
            strength = "weak"
        role = "support" if candidate.direction == "up" else "resistance"
        trend = "rising" if candidate.direction == "up" else "falling"

        reason = (
            f"{trend.capitalize()} structure over {candidate.span} bars at {abs(fit.slope * 100):.2f}% slope "
            f"with {score.touches} touches (volume ratio {score.volume_analysis.volume_ratio:.2f}); "
            f"likely to act as {strength} {role}. R²: {fit.r_squared:.3f}"
        )
        if factors.multi_timeframe_confirmation:
            reason += ". Confirmed on the higher timeframe"
        if score.patterns:
            reason += f". {score.patterns[0].replace('_', ' ')} at an anchor"
        return reason
