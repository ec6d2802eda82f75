"""
Tests for the line quality predictor and its scorers.
"""

import pytest

from chart_proposals.config.analysis_config import PredictorConfig
from chart_proposals.ml.feature_extractor import FEATURE_COUNT, normalize_features
from chart_proposals.ml.line_predictor import (
    LineQualityPredictor,
    NeuralScorer,
    RuleBasedScorer,
    calculate_risk_score,
    generate_reasoning,
    predict_line_success,
    suggest_risk_management,
)
from chart_proposals.utils.exceptions import ScorerUnavailableException

from conftest import FailingScorer, FixedScorer, make_features


@pytest.fixture(scope="module")
def small_neural_config():
    """Small network that trains in well under a second"""
    return PredictorConfig(
        hidden_layer_sizes=(8,),
        synthetic_samples=200,
        max_iter=20,
        batch_size=32,
    )


@pytest.fixture(scope="module")
def neural_scorer(small_neural_config):
    return NeuralScorer(small_neural_config)


@pytest.fixture
def strong_features():
    return make_features(touch_count=6, r_squared=0.95, body_touch_ratio=0.8, time_since_last_touch=3)


class TestRuleBasedScorer:
    """Tests for RuleBasedScorer"""

    def test_neutral_line(self):
        """Test the rule score of an unremarkable line"""
        features = make_features(touch_count=2, r_squared=0.0, time_since_last_touch=20)
        output = RuleBasedScorer().predict(features, normalize_features(features))

        assert output.success_probability == pytest.approx(0.5)
        assert output.expected_bounces == 2
        assert output.confidence_interval == (pytest.approx(0.35), pytest.approx(0.65))

    def test_strong_line_scores_above_even(self, strong_features):
        """Test that many touches and a tight fit raise the probability"""
        output = RuleBasedScorer().predict(strong_features, normalize_features(strong_features))

        assert output.success_probability > 0.5

    def test_probability_is_clamped(self):
        """Test the probability bounds"""
        best = make_features(
            touch_count=8, r_squared=1.0, volume_strength=2.0, body_touch_ratio=0.9,
            market_condition="trending", recent_touch_count=4
        )
        worst = make_features(
            touch_count=2, r_squared=0.0, wick_touch_ratio=0.9, market_condition="volatile",
            time_since_last_touch=80
        )
        scorer = RuleBasedScorer(0.1, 0.95)

        assert scorer.predict(best, normalize_features(best)).success_probability == 0.95
        worst_output = scorer.predict(worst, normalize_features(worst))
        assert worst_output.success_probability == pytest.approx(0.25)
        assert worst_output.confidence_interval[0] >= 0.0


class TestNeuralScorer:
    """Tests for NeuralScorer"""

    def test_trained_on_construction(self, neural_scorer, small_neural_config):
        """Test that the network is ready after construction"""
        assert neural_scorer.is_trained
        assert neural_scorer.training_samples == small_neural_config.synthetic_samples
        assert neural_scorer.training_loss is not None

    def test_outputs_are_bounded(self, neural_scorer, strong_features):
        """Test the ranges of the network outputs"""
        output = neural_scorer.predict(strong_features, normalize_features(strong_features))

        assert 0.0 <= output.success_probability <= 1.0
        assert 0 <= output.expected_bounces <= 5
        low, high = output.confidence_interval
        assert 0.0 <= low <= high <= 1.0

    def test_synthetic_data_is_seeded(self, neural_scorer):
        """Test that the bootstrap data is reproducible"""
        X1, y1 = neural_scorer.synthetic_dataset()
        X2, y2 = neural_scorer.synthetic_dataset()

        assert X1.shape == (200, FEATURE_COUNT)
        assert y1.shape == (200, 4)
        assert (X1 == X2).all()
        assert (y1 == y2).all()

    def test_wrong_vector_length(self, neural_scorer, strong_features):
        """Test that a malformed vector makes the scorer unavailable"""
        with pytest.raises(ScorerUnavailableException):
            neural_scorer.predict(strong_features, [0.5] * 5)


class TestLineQualityPredictor:
    """Tests for LineQualityPredictor"""

    def test_rules_only_predictor(self, rules_only_config, strong_features):
        """Test a predictor configured without the neural scorer"""
        predictor = LineQualityPredictor(rules_only_config)
        prediction = predictor.predict(strong_features)

        assert predictor.scorer is None
        assert prediction.scorer == "rule_based"
        assert prediction.success_probability > 0.5
        assert prediction.suggested_stop_loss is None

    def test_unavailable_scorer_falls_back(self, rules_only_config, strong_features):
        """Test the fallback when the primary scorer is unavailable"""
        predictor = LineQualityPredictor(
            rules_only_config,
            scorer=FailingScorer(ScorerUnavailableException("not trained", scorer="failing"))
        )
        prediction = predictor.predict(strong_features)

        assert prediction.scorer == "rule_based"
        assert prediction.success_probability > 0.5

    def test_crashing_scorer_falls_back(self, rules_only_config, strong_features):
        """Test the fallback on unexpected scorer errors"""
        predictor = LineQualityPredictor(rules_only_config, scorer=FailingScorer(RuntimeError("boom")))
        prediction = predictor.predict(strong_features)

        assert prediction.scorer == "rule_based"

    def test_primary_scorer_result(self, rules_only_config, strong_features):
        """Test that a working scorer answers with risk suggestions"""
        scorer = FixedScorer(0.6)
        predictor = LineQualityPredictor(rules_only_config, scorer=scorer)
        prediction = predictor.predict(strong_features)

        assert scorer.calls == 1
        assert prediction.scorer == "fixed"
        assert prediction.success_probability == 0.6
        assert prediction.suggested_stop_loss == pytest.approx(0.028)
        assert prediction.suggested_take_profit == pytest.approx(0.064)
        assert prediction.risk_score == pytest.approx(0.4)

    def test_reasoning_sorted_by_weight(self, rules_only_config, strong_features):
        """Test reasoning order"""
        prediction = LineQualityPredictor(rules_only_config).predict(strong_features)
        weights = [r.weight for r in prediction.reasoning]

        assert weights
        assert weights == sorted(weights, reverse=True)
        assert prediction.reasoning[0].factor == "Linearity"

    def test_serialization(self, rules_only_config, fixed_scorer, strong_features):
        """Test the transport form of a prediction"""
        payload = LineQualityPredictor(rules_only_config, scorer=fixed_scorer).predict(strong_features).to_dict()

        assert set(payload) >= {
            'successProbability', 'expectedBounces', 'confidenceInterval',
            'riskScore', 'reasoning', 'suggestedStopLoss', 'suggestedTakeProfit'
        }

    def test_feature_importance(self, rules_only_config):
        """Test the feature importance listing"""
        importance = LineQualityPredictor(rules_only_config).get_feature_importance()

        assert importance[0] == {'feature': 'touchCount', 'importance': 0.25, 'category': 'basic'}
        values = [item['importance'] for item in importance]
        assert values == sorted(values, reverse=True)
        categories = {item['feature']: item['category'] for item in importance}
        assert categories['volumeStrength'] == 'volume'
        assert categories['recentTouchCount'] == 'time'
        assert categories['marketCondition'] == 'market'

    def test_update_with_outcome(self, rules_only_config, strong_features):
        """Test that recorded outcomes refresh the metrics"""
        predictor = LineQualityPredictor(rules_only_config)

        predictor.update_with_outcome("line_1", strong_features, actual_success=True, actual_bounces=3)
        metrics = predictor.update_with_outcome(
            "line_2", make_features(touch_count=2, r_squared=0.0, wick_touch_ratio=0.9,
                                    market_condition="volatile", time_since_last_touch=80),
            actual_success=False, actual_bounces=0
        )

        assert metrics['outcomes_recorded'] == 2
        assert metrics['accuracy'] == 1.0
        assert metrics['precision'] == 1.0
        assert metrics['recall'] == 1.0
        assert metrics['f1_score'] == 1.0
        assert metrics['status'] in ("good", "warning", "critical")
        assert 0.0 <= metrics['brier_score'] <= 1.0

    def test_initial_metrics(self, rules_only_config):
        """Test the metrics before any outcome"""
        metrics = LineQualityPredictor(rules_only_config).get_model_metrics()

        assert metrics['outcomes_recorded'] == 0
        assert metrics['version'] == "1.0.0"

    def test_neural_predictor(self, small_neural_config, neural_scorer, strong_features):
        """Test predictions served by the neural scorer"""
        predictor = LineQualityPredictor(small_neural_config, scorer=neural_scorer)
        prediction = predictor.predict(strong_features)

        assert prediction.scorer == "neural"
        assert 0.0 <= prediction.success_probability <= 1.0
        assert prediction.suggested_stop_loss is not None

    def test_predict_line_success_helper(self, rules_only_config, strong_features):
        """Test the module-level helper"""
        predictor = LineQualityPredictor(rules_only_config)
        prediction = predict_line_success(strong_features, predictor=predictor)

        assert prediction.scorer == "rule_based"


class TestRiskHelpers:
    """Tests for the risk and reasoning helpers"""

    def test_suggest_risk_management(self):
        """Test stop loss and take profit fractions"""
        assert suggest_risk_management(1.0) == (0.02, 0.08)
        assert suggest_risk_management(0.0) == (0.04, 0.04)

    def test_risk_score_penalties(self):
        """Test that volatility and distance raise the risk"""
        calm = make_features()
        risky = make_features(market_condition="volatile", time_since_last_touch=150, distance_from_price=0.08)

        assert calculate_risk_score(calm, 0.6) == pytest.approx(0.4)
        assert calculate_risk_score(risky, 0.6) == pytest.approx(0.4 * 1.2 * 1.1 * 1.1)
        assert calculate_risk_score(risky, 0.0) == 1.0

    def test_reasoning_for_few_touches(self):
        """Test the negative touch count reason"""
        reasons = generate_reasoning(make_features(touch_count=2))

        assert any(r.factor == "Touch count" and r.impact == "negative" for r in reasons)
