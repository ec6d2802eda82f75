"""
Proposal data model and the generator interface.

Generators form a closed set of variants tagged by ``GeneratorKind``; each
implements ``generate(bars, params) -> List[Proposal]`` and always returns
a confidence-sorted list cut to ``params.max_proposals``.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple

from ..config.analysis_config import ChartAnalysisConfig, get_config
from ..preprocessing.data_processor import PriceBar
from ..utils.exceptions import InvalidDataException
from ..utils.helpers import clamp, generate_proposal_id
from ..utils.logger import LoggerMixin
from .validator import validate_drawing_data


class ProposalType(str, Enum):
    """Drawing type of a proposal"""
    TRENDLINE = "trendline"
    HORIZONTAL = "horizontal"
    FIBONACCI = "fibonacci"
    PATTERN = "pattern"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class GeneratorKind(str, Enum):
    """Tag of each generator variant"""
    TRENDLINE = "trendline"
    SUPPORT_RESISTANCE = "support-resistance"
    FIBONACCI = "fibonacci"
    PATTERN = "pattern"


class AnalysisType(str, Enum):
    """Requested analysis; ``ALL`` selects every generator"""
    TRENDLINE = "trendline"
    SUPPORT_RESISTANCE = "support-resistance"
    FIBONACCI = "fibonacci"
    PATTERN = "pattern"
    ALL = "all"

    def generator_kinds(self) -> Tuple[GeneratorKind, ...]:
        if self is AnalysisType.ALL:
            return tuple(GeneratorKind)
        return (GeneratorKind(self.value),)


class MarketConditionType(str, Enum):
    TRENDING = "trending"
    RANGING = "ranging"
    VOLATILE = "volatile"


@dataclass(frozen=True)
class MarketCondition:
    """Overall state of the market over the analysed bars"""
    type: MarketConditionType
    strength: float
    direction: Optional[str] = None  # 'bullish' | 'bearish'

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type.value, 'strength': self.strength, 'direction': self.direction}


@dataclass(frozen=True)
class MultiTimeframeAnalysis:
    """Comparison with the next higher timeframe"""
    higher_timeframe: Optional[str]
    trend: str = "neutral"
    support: Tuple[float, ...] = ()
    resistance: Tuple[float, ...] = ()
    alignment: bool = False
    conflicting_signals: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'higher_timeframe': self.higher_timeframe,
            'trend': self.trend,
            'support': list(self.support),
            'resistance': list(self.resistance),
            'alignment': self.alignment,
            'conflicting_signals': self.conflicting_signals,
        }


@dataclass(frozen=True)
class ChartPoint:
    time: int
    value: float

    def to_dict(self) -> Dict[str, Any]:
        return {'time': self.time, 'value': self.value}


@dataclass(frozen=True)
class DrawingStyle:
    color: str
    line_width: float = 2
    line_style: str = "solid"
    show_labels: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'color': self.color,
            'lineWidth': self.line_width,
            'lineStyle': self.line_style,
            'showLabels': self.show_labels,
        }


@dataclass(frozen=True)
class Proposal:
    """
    Scored chart annotation awaiting approval and rendering
    """
    id: str
    type: ProposalType
    points: Tuple[ChartPoint, ...]
    style: DrawingStyle
    confidence: float
    priority: Priority
    reason: str
    title: str = ""
    description: str = ""
    symbol: str = ""
    interval: str = ""
    price: Optional[float] = None
    levels: Optional[Tuple[float, ...]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: int = field(default_factory=lambda: int(time.time() * 1000))

    def to_dict(self) -> Dict[str, Any]:
        drawing: Dict[str, Any] = {
            'type': self.type.value,
            'points': [p.to_dict() for p in self.points],
            'style': self.style.to_dict(),
        }
        if self.price is not None:
            drawing['price'] = self.price
        if self.levels is not None:
            drawing['levels'] = list(self.levels)

        return {
            'id': self.id,
            'type': self.type.value,
            'title': self.title,
            'description': self.description,
            'reason': self.reason,
            'drawingData': drawing,
            'confidence': self.confidence,
            'priority': self.priority.value,
            'createdAt': self.created_at,
            'symbol': self.symbol,
            'interval': self.interval,
            'metadata': self.metadata,
        }


@dataclass(frozen=True)
class GeneratorParams:
    """Per-request generation parameters"""
    symbol: str
    interval: str
    max_proposals: int = 5
    exclude_ids: FrozenSet[str] = frozenset()
    market_condition: Optional[MarketCondition] = None
    multi_timeframe: Optional[MultiTimeframeAnalysis] = None

    @property
    def mtf_aligned(self) -> bool:
        return bool(self.multi_timeframe and self.multi_timeframe.alignment)


@dataclass
class ProposalGroup:
    """Result of one generation request"""
    id: str
    title: str
    description: str
    proposals: List[Proposal]
    market_condition: Optional[MarketCondition] = None
    status: str = "pending"
    created_at: int = field(default_factory=lambda: int(time.time() * 1000))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'status': self.status,
            'createdAt': self.created_at,
            'proposals': [p.to_dict() for p in self.proposals],
            'marketCondition': self.market_condition.to_dict() if self.market_condition else None,
        }


class ProposalGenerator(LoggerMixin, ABC):
    """
    Base class of the generator variants

    Subclasses implement ``_generate``; ``generate`` applies the common
    contract: empty input yields ``[]``, excluded ids and sub-threshold
    candidates are dropped, the result is sorted by confidence (descending)
    and cut to ``max_proposals``.
    """

    kind: GeneratorKind

    def __init__(self, config: Optional[ChartAnalysisConfig] = None):
        super().__init__()
        self.config = config or get_config()

    @property
    def name(self) -> str:
        return self.__class__.__name__

    def generate(self, bars: Sequence[PriceBar], params: GeneratorParams) -> List[Proposal]:
        """Scored proposals for ``bars``"""
        self.log_operation_start(
            "generate",
            bars=len(bars),
            symbol=params.symbol,
            interval=params.interval
        )

        if len(bars) == 0 or params.max_proposals <= 0:
            return []

        candidates = self._generate(bars, params)
        proposals = [
            p for p in candidates
            if p.id not in params.exclude_ids
            and p.confidence >= self.config.scoring.min_confidence
        ]
        proposals.sort(key=lambda p: p.confidence, reverse=True)
        proposals = proposals[:params.max_proposals]

        self.log_operation_end(
            "generate",
            candidates=len(candidates),
            proposals=len(proposals)
        )
        return proposals

    @abstractmethod
    def _generate(self, bars: Sequence[PriceBar], params: GeneratorParams) -> List[Proposal]:
        """Unfiltered candidates"""

    def _build_proposal(
        self,
        id_prefix: str,
        proposal_type: ProposalType,
        points: Sequence[Dict[str, float]],
        style: Dict[str, Any],
        confidence: float,
        priority: Priority,
        reason: str,
        params: GeneratorParams,
        metadata: Dict[str, Any],
        title: str = "",
        description: str = "",
        price: Optional[float] = None,
        levels: Optional[Sequence[float]] = None
    ) -> Optional[Proposal]:
        """
        Validate the drawing payload and assemble a proposal

        Returns:
            The proposal, or None when the drawing data is invalid
        """
        try:
            drawing = validate_drawing_data({
                'type': proposal_type.value,
                'points': list(points),
                'style': style,
                'price': price,
                'levels': list(levels) if levels is not None else None,
            })
        except InvalidDataException as e:
            self.logger.warning(
                "Dropping candidate with invalid drawing data",
                proposal_type=proposal_type.value,
                error=e.message
            )
            return None

        return Proposal(
            id=generate_proposal_id(id_prefix),
            type=proposal_type,
            points=tuple(ChartPoint(int(p['time']), float(p['value'])) for p in drawing['points']),
            style=DrawingStyle(
                color=drawing['style']['color'],
                line_width=drawing['style']['lineWidth'],
                line_style=drawing['style']['lineStyle'],
                show_labels=drawing['style']['showLabels'],
            ),
            confidence=clamp(confidence),
            priority=priority,
            reason=reason,
            title=title,
            description=description,
            symbol=params.symbol,
            interval=params.interval,
            price=drawing.get('price'),
            levels=tuple(drawing['levels']) if drawing.get('levels') is not None else None,
            metadata=metadata,
        )
