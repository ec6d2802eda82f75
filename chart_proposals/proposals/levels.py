"""
Support/resistance proposal generator
"""

from typing import List, Optional, Sequence

import numpy as np

from ..config.analysis_config import ChartAnalysisConfig
from ..preprocessing.data_processor import PriceBar
from ..support_resistance.algorithms import PriceLevelClusterer
from ..support_resistance.level_manager import LevelKind, PriceLevel
from ..utils.helpers import format_price, safe_divide
from .base import GeneratorKind, GeneratorParams, Priority, Proposal, ProposalGenerator, ProposalType
from .confidence import ConfidenceScorer
from .styles import level_style

NEARBY_DISTANCE = 0.05


class SupportResistanceGenerator(ProposalGenerator):
    """
    Horizontal level proposals from the clustered price levels

    The strongest ``2 * max_proposals`` levels are scored; levels within 5%
    of the latest close with enough touches become high priority.
    """

    kind = GeneratorKind.SUPPORT_RESISTANCE

    def __init__(self, config: Optional[ChartAnalysisConfig] = None):
        super().__init__(config)
        self.clusterer = PriceLevelClusterer(self.config.detection)
        self.scorer = ConfidenceScorer(self.config.scoring, self.config.detection.recent_candles)

    def _generate(self, bars: Sequence[PriceBar], params: GeneratorParams) -> List[Proposal]:
        levels = sorted(self.clusterer.cluster(bars), key=lambda lv: lv.strength, reverse=True)
        levels = [lv for lv in levels if lv.touch_count >= self.config.detection.min_touches]

        proposals = []
        for level in levels[:params.max_proposals * 2]:
            proposal = self._create_proposal(level, bars, params)
            if proposal is not None:
                proposals.append(proposal)
        return proposals

    def _create_proposal(
        self,
        level: PriceLevel,
        bars: Sequence[PriceBar],
        params: GeneratorParams
    ) -> Optional[Proposal]:
        confidence = self.scorer.support_resistance_confidence(level, bars)
        if confidence < self.config.scoring.min_confidence:
            return None

        current_price = bars[-1].close
        distance = safe_divide(abs(current_price - level.price), current_price, default=1.0)
        average_volume = float(np.mean([b.volume for b in bars]))
        touch_volume = float(np.mean([t.volume for t in level.touches]))
        kind_label = "support/resistance" if level.kind == LevelKind.BOTH else level.kind.value

        return self._build_proposal(
            id_prefix=f"sr_{level.kind.value}",
            proposal_type=ProposalType.HORIZONTAL,
            points=[{'time': bars[0].time, 'value': level.price}],
            style=level_style(level.kind.value, level.strength),
            confidence=confidence,
            priority=self._priority(confidence, level.touch_count, distance),
            reason=self._reason(level, distance, current_price),
            params=params,
            title=f"{kind_label.capitalize()} at {format_price(level.price)}",
            description=f"{self._strength_label(level.strength)} level with {level.touch_count} touches",
            price=level.price,
            metadata={
                'levelType': level.kind.value,
                'touches': level.touch_count,
                'strength': level.strength,
                'distanceFromPrice': distance,
                'volumeAnalysis': {
                    'averageTouchVolume': touch_volume,
                    'volumeRatio': safe_divide(touch_volume, average_volume, default=1.0),
                },
            },
        )

    def _priority(self, confidence: float, touches: int, distance: float) -> Priority:
        scoring = self.config.scoring
        if confidence >= scoring.high_confidence and touches >= 5 and distance < NEARBY_DISTANCE:
            return Priority.HIGH
        if confidence >= scoring.min_confidence and touches >= 3:
            return Priority.MEDIUM
        return Priority.LOW

    @staticmethod
    def _strength_label(strength: float) -> str:
        if strength > 0.7:
            return "Very strong"
        if strength > 0.5:
            return "Strong"
        if strength > 0.3:
            return "Moderate"
        return "Weak"

    @staticmethod
    def _reason(level: PriceLevel, distance: float, current_price: float) -> str:
        side = "below" if level.price < current_price else "above"
        reason = (
            f"Price reacted {level.touch_count} times at {format_price(level.price)} "
            f"({distance:.2%} {side} the current price)"
        )
        if level.kind == LevelKind.BOTH:
            reason += "; the level has acted as both support and resistance"
        return reason
