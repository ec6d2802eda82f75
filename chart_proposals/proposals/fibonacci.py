"""
Fibonacci retracement proposal generator
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from ..config.analysis_config import ChartAnalysisConfig
from ..preprocessing.data_processor import PriceBar
from ..support_resistance.algorithms import SwingKind, SwingPoint, SwingPointDetector
from ..utils.helpers import format_price
from .base import GeneratorKind, GeneratorParams, Priority, Proposal, ProposalGenerator, ProposalType
from .confidence import MAJOR_FIBONACCI_LEVELS, ConfidenceScorer, trend_clarity
from .styles import fibonacci_style

NEAREST_LEVEL_DISTANCE = 0.05


@dataclass(frozen=True)
class SwingPair:
    """Two swings of opposite kind spanning a retracement"""
    start: SwingPoint
    end: SwingPoint
    direction: str  # 'up' (low -> high) | 'down' (high -> low)
    score: float
    clarity: float

    @property
    def price_range(self) -> float:
        return abs(self.end.price - self.start.price)


class FibonacciGenerator(ProposalGenerator):
    """
    Fibonacci variant of the proposal generators

    Pairs are drawn from the most recent swing points and ranked by
    ``0.3 * price change + 0.3 * recency + 0.2 * swing strength
    + 0.2 * trend clarity``; the best pairs become retracement proposals.
    """

    kind = GeneratorKind.FIBONACCI

    def __init__(self, config: Optional[ChartAnalysisConfig] = None):
        super().__init__(config)
        self.detection = self.config.detection
        self.swing_detector = SwingPointDetector(self.detection)
        self.scorer = ConfidenceScorer(self.config.scoring, self.detection.recent_candles)

    def _generate(self, bars: Sequence[PriceBar], params: GeneratorParams) -> List[Proposal]:
        swings = self.swing_detector.detect(bars, self.detection.peak_window_size)
        if len(swings) < 2:
            self.logger.debug("Not enough swing points for Fibonacci", swings=len(swings))
            return []

        proposals = []
        for pair in self.find_pairs(swings, bars):
            proposal = self._create_proposal(pair, bars, params)
            if proposal is not None:
                proposals.append(proposal)
        return proposals

    def find_pairs(self, swings: Sequence[SwingPoint], bars: Sequence[PriceBar]) -> List[SwingPair]:
        """Best scoring opposite-kind pairs among the recent swings"""
        recent = list(swings)[-self.detection.fibonacci_recent_swings:]
        closes = np.array([b.close for b in bars], dtype=float)
        pairs = []

        for i, first in enumerate(recent[:-1]):
            for second in recent[i + 1:i + 1 + self.detection.fibonacci_pair_lookahead]:
                if second.index - first.index < self.detection.fibonacci_min_index_gap:
                    continue
                if first.kind == second.kind or first.price <= 0:
                    continue

                direction = "up" if first.kind == SwingKind.LOW else "down"
                clarity = trend_clarity(closes[first.index:second.index + 1])
                score = (
                    abs(second.price - first.price) / first.price * 0.3
                    + (len(bars) - second.index) / len(bars) * 0.3
                    + (first.strength + second.strength) / 2 * 0.2
                    + clarity * 0.2
                )
                pairs.append(SwingPair(first, second, direction, score, clarity))

        pairs.sort(key=lambda p: p.score, reverse=True)
        return pairs[:self.detection.fibonacci_top_pairs]

    def _create_proposal(
        self,
        pair: SwingPair,
        bars: Sequence[PriceBar],
        params: GeneratorParams
    ) -> Optional[Proposal]:
        current_price = bars[-1].close
        price_range = pair.price_range
        if price_range <= 0:
            return None

        average_volume = float(np.mean([b.volume for b in bars]))
        swing_volume = (bars[pair.start.index].volume + bars[pair.end.index].volume) / 2
        volume_confirmed = swing_volume > average_volume

        confidence = self.scorer.fibonacci_confidence(
            swing_high=max(pair.start.price, pair.end.price),
            swing_low=min(pair.start.price, pair.end.price),
            current_price=current_price,
            clarity=pair.clarity,
            volume_confirmed=volume_confirmed
        )
        if confidence < self.config.scoring.min_confidence:
            return None

        if pair.direction == "up":
            retracement = (pair.end.price - current_price) / price_range
        else:
            retracement = (current_price - pair.end.price) / price_range

        ratios = self.detection.fibonacci_levels
        nearest = min(ratios, key=lambda r: abs(retracement - r))
        nearest_level = nearest if abs(retracement - nearest) <= NEAREST_LEVEL_DISTANCE else None

        label = "Bullish" if pair.direction == "up" else "Bearish"
        return self._build_proposal(
            id_prefix=f"fib_{pair.direction}",
            proposal_type=ProposalType.FIBONACCI,
            points=[
                {'time': pair.start.time, 'value': pair.start.price},
                {'time': pair.end.time, 'value': pair.end.price},
            ],
            style=fibonacci_style(),
            confidence=confidence,
            priority=self._priority(confidence, pair.score, retracement),
            reason=self._reason(pair, retracement, nearest_level),
            params=params,
            title=f"{label} Fibonacci retracement",
            description=(
                f"Swing from {format_price(pair.start.price)} to {format_price(pair.end.price)}, "
                f"currently {retracement:.1%} retraced"
            ),
            levels=ratios,
            metadata={
                'direction': pair.direction,
                'swingStrength': (pair.start.strength + pair.end.strength) / 2,
                'priceChange': pair.end.price - pair.start.price,
                'currentRetracement': retracement,
                'nearestLevel': nearest_level,
                'swingClarity': pair.clarity,
                'volumeConfirmed': volume_confirmed,
                'levels': self._level_prices(pair, ratios, retracement=True),
                'extensions': self._level_prices(pair, self.detection.fibonacci_extensions, retracement=False),
            },
        )

    @staticmethod
    def _level_prices(pair: SwingPair, ratios: Sequence[float], retracement: bool) -> List[Dict[str, Any]]:
        """
        Prices of retracement ratios (measured back from the swing end) or
        extension ratios (measured from the swing start)
        """
        sign = 1.0 if pair.direction == "up" else -1.0
        if retracement:
            return [
                {'level': r, 'price': pair.end.price - sign * pair.price_range * r}
                for r in ratios
            ]
        return [
            {'level': r, 'price': pair.start.price + sign * pair.price_range * r}
            for r in ratios
        ]

    def _priority(self, confidence: float, score: float, retracement: float) -> Priority:
        scoring = self.config.scoring
        near_major = min(abs(retracement - level) for level in MAJOR_FIBONACCI_LEVELS) < 0.02
        if confidence >= scoring.high_confidence and score > 0.7 and near_major:
            return Priority.HIGH
        if confidence >= scoring.min_confidence and score > 0.5:
            return Priority.MEDIUM
        return Priority.LOW

    @staticmethod
    def _reason(pair: SwingPair, retracement: float, nearest_level: Optional[float]) -> str:
        move = "advance" if pair.direction == "up" else "decline"
        bars_between = pair.end.index - pair.start.index
        reason = (
            f"Clean {move} of {format_price(pair.price_range)} over {bars_between} bars "
            f"(clarity {pair.clarity:.0%}); price has retraced {retracement:.1%}"
        )
        if nearest_level is not None:
            reason += f", close to the {nearest_level:.1%} level"
        return reason
