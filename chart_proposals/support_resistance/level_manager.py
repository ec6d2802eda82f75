"""
Level Manager for Support/Resistance Levels

Immutable price level types and the merge step that folds nearby
candidate levels into clusters and each cluster into one new level.
"""

from dataclasses import dataclass
from enum import Enum
from functools import reduce
from typing import Dict, List, Optional, Sequence, Tuple, Any

from ..config.analysis_config import DetectionConfig, get_config
from ..utils.logger import get_logger


class LevelKind(str, Enum):
    """Role of a price level or of a single touch"""
    SUPPORT = "support"
    RESISTANCE = "resistance"
    BOTH = "both"


@dataclass(frozen=True)
class LevelTouch:
    """Bar revisiting a price level"""
    time: int
    price: float
    volume: float
    kind: LevelKind

    @property
    def key(self) -> Tuple[int, float]:
        return self.time, self.price


@dataclass(frozen=True)
class PriceLevel:
    """
    Candidate support/resistance level

    ``touches`` are ordered by time; a level needs at least two of them to
    become a proposal.
    """
    price: float
    touches: Tuple[LevelTouch, ...]
    strength: float
    kind: LevelKind

    @property
    def touch_count(self) -> int:
        return len(self.touches)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'price': self.price,
            'kind': self.kind.value,
            'strength': self.strength,
            'touches': [
                {'time': t.time, 'price': t.price, 'volume': t.volume, 'kind': t.kind.value}
                for t in self.touches
            ],
        }


def derive_level_kind(touches: Sequence[LevelTouch]) -> LevelKind:
    """
    Majority rule: one side wins only with more than twice the touches of
    the other side; ``both`` touches count for each side.
    """
    support = sum(1 for t in touches if t.kind in (LevelKind.SUPPORT, LevelKind.BOTH))
    resistance = sum(1 for t in touches if t.kind in (LevelKind.RESISTANCE, LevelKind.BOTH))

    if support > resistance * 2:
        return LevelKind.SUPPORT
    if resistance > support * 2:
        return LevelKind.RESISTANCE
    return LevelKind.BOTH


Cluster = Tuple[PriceLevel, ...]


class LevelManager:
    """
    Merges nearby price levels.

    Clustering sweeps the levels in price order; a level joins the open
    cluster when it lies within the merge distance of the cluster's first
    (lowest) level, otherwise it opens a new cluster. Both steps return
    new ``PriceLevel`` values and never modify their inputs.
    """

    def __init__(self, config: Optional[DetectionConfig] = None):
        self.config = config or get_config().detection
        self.logger = get_logger("LevelManager")

    def cluster_levels(
        self,
        levels: Sequence[PriceLevel],
        reference_price: float
    ) -> List[PriceLevel]:
        """
        Merge levels within ``cluster_threshold`` of ``reference_price``

        Args:
            levels: Candidate levels
            reference_price: Usually the latest close

        Returns:
            One level per cluster, ordered by price
        """
        threshold = abs(reference_price) * self.config.cluster_threshold

        def absorb(clusters: Tuple[Cluster, ...], level: PriceLevel) -> Tuple[Cluster, ...]:
            if clusters and abs(level.price - clusters[-1][0].price) <= threshold:
                return clusters[:-1] + (clusters[-1] + (level,),)
            return clusters + ((level,),)

        clusters = reduce(absorb, sorted(levels, key=lambda lv: lv.price), ())
        merged = [cluster[0] if len(cluster) == 1 else self.merge_levels(cluster) for cluster in clusters]

        if len(merged) < len(levels):
            self.logger.debug(
                "Levels merged",
                input_levels=len(levels),
                output_levels=len(merged),
                threshold=round(threshold, 8)
            )
        return merged

    def merge_levels(self, levels: Sequence[PriceLevel]) -> PriceLevel:
        """
        Fold several levels into one

        - price: average of the level prices weighted by touch count
        - touches: union de-duplicated by (time, price), ordered by time
        - kind: majority rule over the merged touches
        - strength: min(1, touches / 10)
        """
        if not levels:
            raise ValueError("merge_levels requires at least one level")

        total_weight = sum(level.touch_count for level in levels)
        if total_weight > 0:
            price = sum(level.price * level.touch_count for level in levels) / total_weight
        else:
            price = sum(level.price for level in levels) / len(levels)

        unique: Dict[Tuple[int, float], LevelTouch] = {}
        for level in levels:
            for touch in level.touches:
                unique.setdefault(touch.key, touch)
        touches = tuple(sorted(unique.values(), key=lambda t: (t.time, t.price)))

        return PriceLevel(
            price=price,
            touches=touches,
            strength=min(1.0, len(touches) / 10),
            kind=derive_level_kind(touches),
        )
