"""
Proposal Engine

Runs the generators selected by an analysis type over one bar series,
merges their proposals and applies the global exclusion, ordering and
size cut.
"""

import asyncio
import dataclasses
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np

from ..config.analysis_config import ChartAnalysisConfig, get_config
from ..preprocessing.data_processor import BarsInput, PriceBar, coerce_bars
from ..utils.exceptions import InsufficientDataException
from ..utils.helpers import generate_proposal_id
from ..utils.logger import LoggerMixin
from .base import (
    AnalysisType,
    GeneratorKind,
    GeneratorParams,
    Proposal,
    ProposalGenerator,
    ProposalGroup,
)
from .fibonacci import FibonacciGenerator
from .levels import SupportResistanceGenerator
from .market_analyzer import HigherTimeframeProvider, MarketAnalyzer
from .patterns import PatternGenerator
from .trendline import TrendlineGenerator

GENERATOR_CLASSES = {
    GeneratorKind.TRENDLINE: TrendlineGenerator,
    GeneratorKind.SUPPORT_RESISTANCE: SupportResistanceGenerator,
    GeneratorKind.FIBONACCI: FibonacciGenerator,
    GeneratorKind.PATTERN: PatternGenerator,
}


def build_generator_registry(
    config: Optional[ChartAnalysisConfig] = None
) -> Dict[GeneratorKind, ProposalGenerator]:
    """One generator instance per kind"""
    return {kind: cls(config) for kind, cls in GENERATOR_CLASSES.items()}


class ProposalEngine(LoggerMixin):
    """
    Orchestrates proposal generation for one instrument and interval.

    Market condition and higher-timeframe alignment are computed once per
    request and shared with every generator. A failing generator is logged
    and contributes no proposals.
    """

    def __init__(
        self,
        config: Optional[ChartAnalysisConfig] = None,
        generators: Optional[Mapping[GeneratorKind, ProposalGenerator]] = None,
        strict: bool = False,
        higher_timeframe_provider: Optional[HigherTimeframeProvider] = None,
        max_workers: int = 4
    ):
        super().__init__()
        self.config = config or get_config()
        self.generators = dict(generators) if generators is not None else build_generator_registry(self.config)
        self.strict = strict
        self.higher_timeframe_provider = higher_timeframe_provider
        self.market_analyzer = MarketAnalyzer()
        self.executor = ThreadPoolExecutor(max_workers=max_workers)

        self.generation_history: List[Dict[str, Any]] = []

    def generate_proposals(
        self,
        bars: BarsInput,
        analysis_type: AnalysisType = AnalysisType.ALL,
        params: Optional[GeneratorParams] = None
    ) -> ProposalGroup:
        """
        Proposals of the selected generators

        Args:
            bars: Time-ordered bars
            analysis_type: Generators to run
            params: Symbol, interval, proposal limit and excluded ids

        Returns:
            Proposal group; empty when there are fewer bars than
            ``min_data_points``

        Raises:
            InsufficientDataException: Too few bars in strict mode
        """
        start_time = time.time()
        params = params or GeneratorParams(symbol="", interval="1h")
        price_bars = coerce_bars(bars)

        if not self._has_enough_data(price_bars, analysis_type, params):
            return self._empty_group(analysis_type, params)

        enriched = self._enrich_params(price_bars, params)
        collected: List[Proposal] = []
        for kind in analysis_type.generator_kinds():
            collected.extend(self._run_generator(kind, price_bars, enriched))

        return self._finalize(collected, analysis_type, enriched, start_time)

    async def generate_proposals_async(
        self,
        bars: BarsInput,
        analysis_type: AnalysisType = AnalysisType.ALL,
        params: Optional[GeneratorParams] = None
    ) -> ProposalGroup:
        """``generate_proposals`` with the generators running concurrently on the thread pool"""
        start_time = time.time()
        params = params or GeneratorParams(symbol="", interval="1h")
        price_bars = coerce_bars(bars)

        if not self._has_enough_data(price_bars, analysis_type, params):
            return self._empty_group(analysis_type, params)

        enriched = self._enrich_params(price_bars, params)
        loop = asyncio.get_running_loop()
        kinds = [kind for kind in analysis_type.generator_kinds() if kind in self.generators]
        tasks = [
            loop.run_in_executor(self.executor, self.generators[kind].generate, price_bars, enriched)
            for kind in kinds
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        collected: List[Proposal] = []
        for kind, result in zip(kinds, results):
            if isinstance(result, Exception):
                self.logger.error("Generator failed", generator=kind.value, error=str(result))
            else:
                collected.extend(result)

        return self._finalize(collected, analysis_type, enriched, start_time)

    def _has_enough_data(
        self,
        bars: Sequence[PriceBar],
        analysis_type: AnalysisType,
        params: GeneratorParams
    ) -> bool:
        required = self.config.detection.min_data_points
        if len(bars) >= required:
            return True

        if self.strict:
            raise InsufficientDataException(
                f"Proposal generation needs at least {required} bars",
                required_samples=required,
                provided_samples=len(bars)
            )
        self.logger.warning(
            "Not enough bars for proposal generation",
            analysis_type=analysis_type.value,
            symbol=params.symbol,
            bars=len(bars),
            required=required
        )
        return False

    def _enrich_params(self, bars: Sequence[PriceBar], params: GeneratorParams) -> GeneratorParams:
        condition = self.market_analyzer.analyze_market_condition(bars)
        multi_timeframe = self.market_analyzer.analyze_multiple_timeframes(
            bars, params.interval, self.higher_timeframe_provider
        )
        return dataclasses.replace(params, market_condition=condition, multi_timeframe=multi_timeframe)

    def _run_generator(
        self,
        kind: GeneratorKind,
        bars: Sequence[PriceBar],
        params: GeneratorParams
    ) -> List[Proposal]:
        generator = self.generators.get(kind)
        if generator is None:
            self.logger.warning("No generator registered", generator=kind.value)
            return []

        try:
            return generator.generate(bars, params)
        except Exception as e:
            self.logger.error(
                "Generator failed",
                generator=kind.value,
                error=str(e),
                exc_info=True
            )
            return []

    def _finalize(
        self,
        proposals: List[Proposal],
        analysis_type: AnalysisType,
        params: GeneratorParams,
        start_time: float
    ) -> ProposalGroup:
        selected = [p for p in proposals if p.id not in params.exclude_ids]
        selected.sort(key=lambda p: p.confidence, reverse=True)
        selected = selected[:max(params.max_proposals, 0)]

        duration_ms = (time.time() - start_time) * 1000
        self.generation_history.append({
            'analysis_type': analysis_type.value,
            'symbol': params.symbol,
            'candidates': len(proposals),
            'proposals': len(selected),
            'duration_ms': duration_ms,
        })
        self.logger.info(
            "Proposal generation completed",
            analysis_type=analysis_type.value,
            symbol=params.symbol,
            interval=params.interval,
            candidates=len(proposals),
            proposals=len(selected),
            duration_ms=round(duration_ms, 2)
        )

        return ProposalGroup(
            id=generate_proposal_id("group"),
            title=self._group_title(analysis_type, params),
            description=f"{len(selected)} proposals from {len(proposals)} candidates",
            proposals=selected,
            market_condition=params.market_condition,
        )

    def _empty_group(self, analysis_type: AnalysisType, params: GeneratorParams) -> ProposalGroup:
        return ProposalGroup(
            id=generate_proposal_id("group"),
            title=self._group_title(analysis_type, params),
            description="Not enough data for analysis",
            proposals=[],
        )

    @staticmethod
    def _group_title(analysis_type: AnalysisType, params: GeneratorParams) -> str:
        subject = "Full" if analysis_type == AnalysisType.ALL else analysis_type.value.replace("-", "/").capitalize()
        return f"{subject} analysis for {params.symbol or 'instrument'} {params.interval}".strip()

    def get_generation_stats(self) -> Dict[str, Any]:
        """Summary of the recent generation requests"""
        if not self.generation_history:
            return {}

        recent = self.generation_history[-50:]
        return {
            'total_requests': len(self.generation_history),
            'average_duration_ms': float(np.mean([r['duration_ms'] for r in recent])),
            'average_proposals': float(np.mean([r['proposals'] for r in recent])),
            'generators_available': [kind.value for kind in self.generators],
        }

    def cleanup(self):
        """Release the worker threads"""
        self.executor.shutdown(wait=True)
        self.generation_history.clear()
