"""
Tests for the staged streaming analysis pipeline.
"""

import pytest

from chart_proposals.config.analysis_config import PredictorConfig
from chart_proposals.ml.feature_extractor import DetectedLine
from chart_proposals.ml.line_predictor import LineQualityPredictor, MLPrediction
from chart_proposals.ml.streaming_analyzer import (
    CancellationToken,
    StreamingAnalysisPipeline,
    StreamingStage,
    important_features,
)
from chart_proposals.proposals.base import ChartPoint
from chart_proposals.utils.exceptions import AnalysisCancelledException, FeatureExtractionException

from conftest import FixedScorer, make_features

EXPECTED_STAGES = [
    (StreamingStage.COLLECTING, 10),
    (StreamingStage.EXTRACTING, 30),
    (StreamingStage.EXTRACTING, 50),
    (StreamingStage.PREDICTING, 70),
    (StreamingStage.PREDICTING, 85),
    (StreamingStage.ANALYZING, 95),
    (StreamingStage.COMPLETE, 100),
]


@pytest.fixture
def predictor():
    return LineQualityPredictor(PredictorConfig(use_neural_scorer=False), scorer=FixedScorer(0.6))


@pytest.fixture
def pipeline(test_config, predictor):
    return StreamingAnalysisPipeline(predictor=predictor, config=test_config)


@pytest.fixture
def line(level_bars):
    return DetectedLine(
        id="line_stream",
        type="horizontal",
        price=50000.0,
        confidence=0.7,
        touch_points=(
            ChartPoint(level_bars[30].time, 50000.0),
            ChartPoint(level_bars[31].time, 50000.0),
        ),
    )


def prediction(probability):
    return MLPrediction(
        success_probability=probability,
        expected_bounces=2,
        confidence_interval=(probability - 0.1, probability + 0.1),
        risk_score=1 - probability,
    )


class TestStreamingAnalysis:
    """Tests for StreamingAnalysisPipeline.analyze_line_with_progress"""

    def test_stage_sequence(self, pipeline, line, level_bars):
        """Test the stage order and progress values"""
        updates, result = pipeline.run_analysis(line, level_bars, "SOLUSDT")

        assert [(u.stage, u.progress) for u in updates] == EXPECTED_STAGES
        assert result.success_probability == 0.6
        assert result.scorer == "fixed"

    def test_progress_never_decreases(self, pipeline, line, level_bars):
        """Test monotonic progress"""
        updates, _ = pipeline.run_analysis(line, level_bars, "SOLUSDT")
        progress = [u.progress for u in updates]

        assert progress == sorted(progress)
        assert progress[-1] == 100

    def test_update_details(self, pipeline, line, level_bars):
        """Test the details carried by the stage updates"""
        updates, result = pipeline.run_analysis(line, level_bars, "SOLUSDT")

        extracted = updates[2]
        assert extracted.details['features_extracted'] == 23
        assert isinstance(extracted.details['important_features'], list)
        assert updates[4].details['preliminary_score'] == result.success_probability
        assert updates[-1].to_dict()['stage'] == "complete"

    def test_generator_is_lazy(self, pipeline, line, level_bars, predictor):
        """Test that no prediction happens before the consumer asks for it"""
        stream = pipeline.analyze_line_with_progress(line, level_bars, "SOLUSDT")
        first = next(stream)

        assert first.stage == StreamingStage.COLLECTING
        assert predictor.scorer.calls == 0

    def test_callback_receives_updates(self, test_config, predictor, line, level_bars):
        """Test the update callback"""
        received = []
        pipeline = StreamingAnalysisPipeline(predictor=predictor, config=test_config, on_update=received.append)
        updates, _ = pipeline.run_analysis(line, level_bars, "SOLUSDT")

        assert received == updates

    def test_cancellation(self, pipeline, line, level_bars):
        """Test that a cancelled token stops the stream at the next boundary"""
        token = CancellationToken()
        stream = pipeline.analyze_line_with_progress(line, level_bars, "SOLUSDT", cancel_token=token)

        next(stream)
        next(stream)
        token.cancel()

        with pytest.raises(AnalysisCancelledException) as exc_info:
            next(stream)
        assert exc_info.value.details['stage'] == "extracting"

    def test_failure_emits_terminal_update(self, pipeline, level_bars):
        """Test the failure update before the error propagates"""
        broken = DetectedLine(id="broken", type="horizontal", price=None, confidence=0.5, touch_points=())
        stream = pipeline.analyze_line_with_progress(broken, level_bars, "SOLUSDT")

        updates = [next(stream), next(stream)]
        failure = next(stream)

        assert [u.progress for u in updates] == [10, 30]
        assert failure.stage == StreamingStage.COMPLETE
        assert failure.progress == 100
        assert failure.current_step.startswith("Analysis failed")
        assert failure.details['failed_stage'] == "extracting"
        assert failure.details['error']['code'] == "FEATURE_EXTRACTION_ERROR"
        with pytest.raises(FeatureExtractionException):
            next(stream)


class TestCurrencyAdjustments:
    """Tests for StreamingAnalysisPipeline.apply_currency_adjustments"""

    def test_round_number_bonus(self, pipeline):
        """Test the round-number bonus on a weekday"""
        features = make_features(near_psychological=True, day_of_week=3)
        adjusted = pipeline.apply_currency_adjustments(prediction(0.5), features, "btcusdt")

        assert adjusted.success_probability == pytest.approx(0.6)
        assert adjusted.reasoning[-1].factor == "BTCUSDT adjustment"

    def test_weekend_reliability(self, pipeline):
        """Test the round-number bonus and weekend factor together"""
        features = make_features(near_psychological=True, day_of_week=6)
        adjusted = pipeline.apply_currency_adjustments(prediction(0.5), features, "BTCUSDT")

        assert adjusted.success_probability == pytest.approx(0.5 * 1.2 * 0.8)
        assert adjusted.reasoning[-1].factor == "Weekend trading"

    def test_adjustment_is_clamped(self, pipeline):
        """Test the upper probability bound after adjustment"""
        features = make_features(near_psychological=True, day_of_week=2)
        adjusted = pipeline.apply_currency_adjustments(prediction(0.9), features, "BTCUSDT")

        assert adjusted.success_probability == pytest.approx(0.95)

    def test_unknown_symbol_unchanged(self, pipeline):
        """Test that unknown instruments are not adjusted"""
        original = prediction(0.5)
        features = make_features(near_psychological=True, day_of_week=0)

        assert pipeline.apply_currency_adjustments(original, features, "DOGEUSDT") is original

    def test_no_bonus_away_from_round_numbers(self, pipeline):
        """Test that only the weekend factor applies away from round numbers"""
        features = make_features(near_psychological=False, day_of_week=0)
        adjusted = pipeline.apply_currency_adjustments(prediction(0.5), features, "ETHUSDT")

        assert adjusted.success_probability == pytest.approx(0.5 * 0.85)


class TestImportantFeatures:
    """Tests for important_features"""

    def test_limit(self):
        """Test the cap on listed features"""
        features = make_features(
            touch_count=7, r_squared=0.95, volume_strength=2.0, body_touch_ratio=0.8,
            timeframe_confluence=0.9, near_psychological=True
        )

        assert len(important_features(features)) == 4
        assert len(important_features(features, limit=10)) == 6

    def test_plain_line(self):
        """Test that an ordinary line has no standout features"""
        assert important_features(make_features()) == []


@pytest.mark.integration
class TestStreamingIntegration:
    """End-to-end streaming over proposals"""

    def test_proposal_to_prediction(self, test_config, predictor, level_bars):
        """Test analysing a generated level proposal"""
        from chart_proposals.proposals import GeneratorParams, SupportResistanceGenerator

        proposal = SupportResistanceGenerator(test_config).generate(
            level_bars, GeneratorParams(symbol="BTCUSDT", interval="1h")
        )[0]
        line = DetectedLine.from_proposal(proposal, level_bars)
        pipeline = StreamingAnalysisPipeline(predictor=predictor, config=test_config)

        updates, result = pipeline.run_analysis(line, level_bars, "BTCUSDT")

        assert updates[-1].progress == 100
        assert test_config.predictor.min_probability <= result.success_probability <= test_config.predictor.max_probability
