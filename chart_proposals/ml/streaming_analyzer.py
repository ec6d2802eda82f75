"""
Staged line analysis with progress updates

``StreamingAnalysisPipeline.analyze_line_with_progress`` is a generator: it
yields one ``StreamingUpdate`` per stage boundary and returns the final
``MLPrediction`` through ``StopIteration.value``. Work between two updates
only happens when the consumer asks for the next one.
"""

import dataclasses
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Generator, List, Optional, Tuple

from ..config.analysis_config import ChartAnalysisConfig, get_config
from ..preprocessing.data_processor import BarsInput, coerce_bars
from ..utils.exceptions import AnalysisCancelledException, ChartAnalysisException, create_error_response
from ..utils.helpers import clamp
from ..utils.logger import LoggerMixin
from .feature_extractor import DetectedLine, FeatureExtractor, LineFeatures, normalize_features
from .line_predictor import LineQualityPredictor, MLPrediction, MLReasoning


class StreamingStage(str, Enum):
    COLLECTING = "collecting"
    EXTRACTING = "extracting"
    PREDICTING = "predicting"
    ANALYZING = "analyzing"
    COMPLETE = "complete"


@dataclass(frozen=True)
class StreamingUpdate:
    """Progress message of one stage boundary"""
    stage: StreamingStage
    progress: int
    current_step: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'stage': self.stage.value,
            'progress': self.progress,
            'currentStep': self.current_step,
            'details': dict(self.details),
        }


class CancellationToken:
    """Set by the consumer to stop an analysis at the next stage boundary"""

    def __init__(self):
        self._cancelled = False

    def cancel(self):
        self._cancelled = True

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled


UpdateCallback = Callable[[StreamingUpdate], None]
AnalysisStream = Generator[StreamingUpdate, None, MLPrediction]


def important_features(features: LineFeatures, limit: int = 4) -> List[str]:
    """Readable descriptions of the standout features"""
    notes = []
    if features.touch_count >= 5:
        notes.append(f"Touch count: {features.touch_count}")
    if features.r_squared > 0.9:
        notes.append(f"High linearity: R²={features.r_squared:.2f}")
    if features.volume_strength > 1.5:
        notes.append(f"Strong volume: {features.volume_strength:.1f}x")
    if features.body_touch_ratio > 0.7:
        notes.append(f"Body touches: {features.body_touch_ratio:.0%}")
    if features.timeframe_confluence > 0.8:
        notes.append("Multi-timeframe confirmation")
    if features.near_psychological:
        notes.append("Psychological price zone")
    return notes[:limit]


class StreamingAnalysisPipeline(LoggerMixin):
    """
    Collect, extract, predict, analyze, complete

    The predictor is injected so several pipelines can share one trained
    scorer. Instrument adjustments come from
    ``StreamingConfig.currency_pairs``; unknown symbols are not adjusted.
    """

    def __init__(
        self,
        predictor: Optional[LineQualityPredictor] = None,
        config: Optional[ChartAnalysisConfig] = None,
        extractor: Optional[FeatureExtractor] = None,
        on_update: Optional[UpdateCallback] = None
    ):
        super().__init__()
        self.config = config or get_config()
        self.predictor = predictor or LineQualityPredictor(self.config.predictor)
        self.extractor = extractor or FeatureExtractor()
        self.on_update = on_update

    def analyze_line_with_progress(
        self,
        line: DetectedLine,
        bars: BarsInput,
        symbol: str,
        current_price: Optional[float] = None,
        cancel_token: Optional[CancellationToken] = None
    ) -> AnalysisStream:
        """
        Stream the analysis of one line

        Yields:
            StreamingUpdate per stage boundary, progress 10 to 100

        Returns:
            Adjusted MLPrediction (as the generator return value)

        Raises:
            AnalysisCancelledException: Token cancelled between stages
            ChartAnalysisException: Any stage failure, after a terminal
                failure update
        """
        start_time = time.time()
        stage = StreamingStage.COLLECTING

        def elapsed_ms() -> float:
            return round((time.time() - start_time) * 1000, 2)

        try:
            yield self._emit(stage, 10, "Collecting price data", processing_time_ms=elapsed_ms())
            self._check_cancelled(cancel_token, stage)
            price_bars = coerce_bars(bars)

            stage = StreamingStage.EXTRACTING
            yield self._emit(stage, 30, "Extracting features", processing_time_ms=elapsed_ms())
            self._check_cancelled(cancel_token, stage)
            features = self.extractor.extract(line, price_bars, current_price)
            vector = normalize_features(features)
            top = important_features(features, self.config.streaming.top_features)
            yield self._emit(
                stage, 50, f"Extracted {len(vector)} features",
                features_extracted=len(vector),
                important_features=top,
                processing_time_ms=elapsed_ms()
            )
            self._check_cancelled(cancel_token, stage)

            stage = StreamingStage.PREDICTING
            yield self._emit(stage, 70, "Scoring line quality", processing_time_ms=elapsed_ms())
            self._check_cancelled(cancel_token, stage)
            prediction = self.predictor.predict(features, vector)
            prediction = self.apply_currency_adjustments(prediction, features, symbol)
            yield self._emit(
                stage, 85, "Prediction ready",
                preliminary_score=prediction.success_probability,
                processing_time_ms=elapsed_ms()
            )
            self._check_cancelled(cancel_token, stage)

            stage = StreamingStage.ANALYZING
            yield self._emit(stage, 95, "Summarizing analysis", processing_time_ms=elapsed_ms())
            self._check_cancelled(cancel_token, stage)

            stage = StreamingStage.COMPLETE
            yield self._emit(
                stage, 100, "Analysis complete",
                features_extracted=len(vector),
                important_features=top,
                preliminary_score=prediction.success_probability,
                processing_time_ms=elapsed_ms()
            )
        except AnalysisCancelledException:
            self.logger.info("Line analysis cancelled", line_id=line.id, stage=stage.value)
            raise
        except Exception as e:
            self.logger.error(
                "Line analysis failed",
                line_id=line.id,
                symbol=symbol,
                stage=stage.value,
                error=str(e)
            )
            failure = {'failed_stage': stage.value}
            if isinstance(e, ChartAnalysisException):
                failure['error'] = create_error_response(e)['error']
            yield self._emit(
                StreamingStage.COMPLETE, 100, f"Analysis failed: {e}",
                **failure,
                processing_time_ms=elapsed_ms()
            )
            raise

        self.logger.info(
            "Line analysis completed",
            line_id=line.id,
            symbol=symbol,
            success_probability=round(prediction.success_probability, 4),
            scorer=prediction.scorer,
            duration_ms=elapsed_ms()
        )
        return prediction

    def run_analysis(
        self,
        line: DetectedLine,
        bars: BarsInput,
        symbol: str,
        current_price: Optional[float] = None,
        cancel_token: Optional[CancellationToken] = None
    ) -> Tuple[List[StreamingUpdate], MLPrediction]:
        """Drain the stream; returns every update and the prediction"""
        updates: List[StreamingUpdate] = []
        stream = self.analyze_line_with_progress(line, bars, symbol, current_price, cancel_token)
        while True:
            try:
                updates.append(next(stream))
            except StopIteration as stop:
                return updates, stop.value

    def apply_currency_adjustments(
        self,
        prediction: MLPrediction,
        features: LineFeatures,
        symbol: str
    ) -> MLPrediction:
        """
        Scale the probability by the instrument's round-number bonus (near a
        psychological price) and weekend reliability (Saturday or Sunday)
        """
        pair = self.config.get_currency_config(symbol)
        if pair is None:
            return prediction

        probability = prediction.success_probability
        reasoning = list(prediction.reasoning)
        symbol = symbol.upper()

        if features.near_psychological and pair.round_number_bonus > 1:
            probability *= pair.round_number_bonus
            reasoning.append(MLReasoning(
                f"{symbol} adjustment", "positive", 0.1,
                f"{symbol} tends to react at round numbers"
            ))

        if features.day_of_week in (0, 6):
            probability *= pair.weekend_reliability
            if pair.weekend_reliability < 1:
                reasoning.append(MLReasoning(
                    "Weekend trading", "negative", 0.05,
                    "Thin weekend liquidity lowers reliability"
                ))

        probability = clamp(
            probability, self.config.predictor.min_probability, self.config.predictor.max_probability
        )
        return dataclasses.replace(prediction, success_probability=probability, reasoning=tuple(reasoning))

    def _emit(self, stage: StreamingStage, progress: int, step: str, **details) -> StreamingUpdate:
        update = StreamingUpdate(stage=stage, progress=progress, current_step=step, details=details)
        self.logger.debug("Streaming update", stage=stage.value, progress=progress)
        if self.on_update is not None:
            self.on_update(update)
        return update

    @staticmethod
    def _check_cancelled(token: Optional[CancellationToken], stage: StreamingStage):
        if token is not None and token.is_cancelled:
            raise AnalysisCancelledException(stage=stage.value)
