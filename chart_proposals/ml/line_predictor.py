"""
Line quality prediction

Maps line features to a success probability, an expected bounce count and
a confidence interval. A small scikit-learn network bootstrapped on
synthetic data is the primary scorer; a rule-based scorer takes over
whenever it is unavailable or fails.
"""

import time
import warnings
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
from sklearn.exceptions import ConvergenceWarning
from sklearn.neural_network import MLPRegressor

from ..config.analysis_config import PredictorConfig, get_config
from ..utils.exceptions import ModelTrainingException, PredictionException, ScorerUnavailableException
from ..utils.helpers import clamp
from ..utils.logger import LoggerMixin, log_model_training, timed_operation
from ..utils.metrics import PredictionMetrics
from .feature_extractor import FEATURE_COUNT, FeatureExtractor, LineFeatures, normalize_features

# Positions in the normalized vector driving the synthetic labels
TOUCH_COUNT_INDEX = 0
R_SQUARED_INDEX = 1
VOLUME_STRENGTH_INDEX = 8
CONFLUENCE_INDEX = 17

MAX_BOUNCES = 5
RULE_INTERVAL_HALF_WIDTH = 0.15
MODEL_VERSION = "1.0.0"


@dataclass(frozen=True)
class MLReasoning:
    """One factor behind a prediction"""
    factor: str
    impact: str  # 'positive' | 'negative' | 'neutral'
    weight: float
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'factor': self.factor,
            'impact': self.impact,
            'weight': self.weight,
            'description': self.description,
        }


@dataclass(frozen=True)
class ScorerOutput:
    success_probability: float
    expected_bounces: int
    confidence_interval: Tuple[float, float]


@dataclass(frozen=True)
class MLPrediction:
    """
    Predicted outcome of trading a line
    """
    success_probability: float
    expected_bounces: int
    confidence_interval: Tuple[float, float]
    risk_score: float
    reasoning: Tuple[MLReasoning, ...] = ()
    suggested_stop_loss: Optional[float] = None
    suggested_take_profit: Optional[float] = None
    scorer: str = "rule_based"

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'successProbability': self.success_probability,
            'expectedBounces': self.expected_bounces,
            'confidenceInterval': list(self.confidence_interval),
            'riskScore': self.risk_score,
            'reasoning': [r.to_dict() for r in self.reasoning],
            'scorer': self.scorer,
        }
        if self.suggested_stop_loss is not None:
            result['suggestedStopLoss'] = self.suggested_stop_loss
        if self.suggested_take_profit is not None:
            result['suggestedTakeProfit'] = self.suggested_take_profit
        return result


class Scorer(ABC):
    """Interface shared by the neural and rule-based scorers"""

    name: str = "scorer"

    @abstractmethod
    def predict(self, features: LineFeatures, vector: Sequence[float]) -> ScorerOutput:
        """Raw outcome estimate for one line"""
        pass


class RuleBasedScorer(Scorer):
    """
    Additive rules starting from an even 0.5

    Touch count, fit quality, volume, touch quality, market condition and
    touch recency each move the probability, which is then clamped.
    """

    name = "rule_based"

    def __init__(self, min_probability: float = 0.1, max_probability: float = 0.95):
        self.min_probability = min_probability
        self.max_probability = max_probability

    def predict(self, features: LineFeatures, vector: Sequence[float]) -> ScorerOutput:
        probability = 0.5

        if features.touch_count >= 3:
            probability += 0.1
        if features.touch_count >= 5:
            probability += 0.1

        probability += features.r_squared * 0.2

        if features.volume_strength > 1.2:
            probability += 0.1

        if features.body_touch_ratio > 0.6:
            probability += 0.1
        if features.wick_touch_ratio > 0.7:
            probability -= 0.05

        if features.market_condition == "trending":
            probability += 0.05
        if features.market_condition == "volatile":
            probability -= 0.1

        if features.recent_touch_count > 2:
            probability += 0.1
        if features.time_since_last_touch > 50:
            probability -= 0.1

        probability = clamp(probability, self.min_probability, self.max_probability)
        return ScorerOutput(
            success_probability=probability,
            expected_bounces=int(round(probability * 3 + 1)),
            confidence_interval=(
                max(0.0, probability - RULE_INTERVAL_HALF_WIDTH),
                min(1.0, probability + RULE_INTERVAL_HALF_WIDTH),
            ),
        )


class NeuralScorer(LoggerMixin, Scorer):
    """
    Feed-forward regressor with four sigmoid-like outputs

    Outputs are success probability, bounce count / 5 and the interval
    bounds, all clipped to [0, 1]. The network is trained once in the
    constructor on seeded synthetic data and is read-only afterwards.
    """

    name = "neural"

    def __init__(self, config: Optional[PredictorConfig] = None):
        super().__init__()
        self.config = config or get_config().predictor
        self.model: Optional[MLPRegressor] = None
        self.training_samples = 0
        self.training_loss: Optional[float] = None
        self._train()

    @property
    def is_trained(self) -> bool:
        return self.model is not None

    def synthetic_dataset(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Random feature vectors with labels that reward touches, linearity,
        volume strength and timeframe confluence
        """
        rng = np.random.default_rng(self.config.random_state)
        n = self.config.synthetic_samples

        X = rng.random((n, FEATURE_COUNT))
        r_squared = X[:, R_SQUARED_INDEX]

        success = np.clip(
            0.3
            + X[:, TOUCH_COUNT_INDEX] * 0.2
            + r_squared * 0.3
            + X[:, VOLUME_STRENGTH_INDEX] * 0.1
            + X[:, CONFLUENCE_INDEX] * 0.2
            + rng.normal(0.0, 0.1, n),
            0.0, 1.0
        )
        bounces = np.clip(success * 0.8 + rng.random(n) * 0.2, 0.0, 1.0)
        width = 0.1 + (1 - r_squared) * 0.2
        y = np.column_stack([
            success,
            bounces,
            np.maximum(0.0, success - width),
            np.minimum(1.0, success + width),
        ])
        return X, y

    @timed_operation("bootstrap_neural_scorer")
    def _train(self):
        self.log_operation_start("bootstrap_neural_scorer", samples=self.config.synthetic_samples)
        start = time.time()

        params = {
            'hidden_layer_sizes': tuple(self.config.hidden_layer_sizes),
            'activation': 'relu',
            'solver': 'adam',
            'learning_rate_init': self.config.learning_rate,
            'batch_size': self.config.batch_size,
            'max_iter': self.config.max_iter,
            'random_state': self.config.random_state,
        }

        try:
            X, y = self.synthetic_dataset()
            model = MLPRegressor(**params)
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", category=ConvergenceWarning)
                model.fit(X, y)
        except (ValueError, MemoryError) as e:
            self.log_operation_end("bootstrap_neural_scorer", success=False, error=str(e))
            raise ModelTrainingException(
                f"Neural scorer bootstrap failed: {e}",
                model_params=params,
                original_exception=e
            ) from e

        self.model = model
        self.training_samples = len(X)
        self.training_loss = float(model.loss_)

        log_model_training(
            self.logger,
            model_name=self.name,
            training_duration=time.time() - start,
            samples_count=self.training_samples,
            model_params=params,
            training_metrics={'loss': self.training_loss, 'iterations': int(model.n_iter_)}
        )
        self.log_operation_end("bootstrap_neural_scorer", success=True)

    def predict(self, features: LineFeatures, vector: Sequence[float]) -> ScorerOutput:
        if self.model is None:
            raise ScorerUnavailableException("Neural scorer is not trained", scorer=self.name)

        X = np.asarray(vector, dtype=float).reshape(1, -1)
        if X.shape[1] != FEATURE_COUNT:
            raise ScorerUnavailableException(
                f"Expected {FEATURE_COUNT} features, got {X.shape[1]}",
                scorer=self.name
            )

        probability, bounces, low, high = np.clip(self.model.predict(X)[0], 0.0, 1.0)
        low, high = sorted((float(low), float(high)))
        return ScorerOutput(
            success_probability=float(probability),
            expected_bounces=int(round(float(bounces) * MAX_BOUNCES)),
            confidence_interval=(low, high),
        )


def generate_reasoning(features: LineFeatures) -> List[MLReasoning]:
    """Reasoning entries of the fixed rule set, heaviest first"""
    reasoning: List[MLReasoning] = []

    if features.touch_count >= 5:
        reasoning.append(MLReasoning(
            "Touch count", "positive", 0.2,
            f"{features.touch_count} touches make a firm support/resistance"
        ))
    elif features.touch_count <= 2:
        reasoning.append(MLReasoning(
            "Touch count", "negative", 0.15,
            "Few touches, the line is not yet reliable"
        ))

    if features.r_squared > 0.9:
        reasoning.append(MLReasoning(
            "Linearity", "positive", 0.25,
            f"R² {features.r_squared:.2f}, a very precise line"
        ))

    if features.volume_strength > 1.5:
        reasoning.append(MLReasoning(
            "Volume", "positive", 0.15,
            "Reactions on high volume suggest institutional interest"
        ))

    if features.body_touch_ratio > 0.7:
        reasoning.append(MLReasoning(
            "Touch quality", "positive", 0.1,
            "Mostly body touches mark a strong price zone"
        ))
    elif features.wick_touch_ratio > 0.8:
        reasoning.append(MLReasoning(
            "Touch quality", "negative", 0.1,
            "Mostly wick touches, the level may be unstable"
        ))

    if features.market_condition == "trending" and features.trend_strength > 0.5:
        reasoning.append(MLReasoning(
            "Market condition", "positive", 0.1,
            "Line drawn in a strongly trending market"
        ))

    if features.time_since_last_touch < 10:
        reasoning.append(MLReasoning(
            "Recent reaction", "positive", 0.15,
            "Freshly tested line"
        ))

    if features.near_psychological:
        reasoning.append(MLReasoning(
            "Psychological price", "positive", 0.1,
            "Near a round number many traders watch"
        ))

    reasoning.sort(key=lambda r: r.weight, reverse=True)
    return reasoning


def calculate_risk_score(features: LineFeatures, success_probability: float) -> float:
    risk = 1 - success_probability
    if features.market_condition == "volatile":
        risk *= 1.2
    if features.time_since_last_touch > 100:
        risk *= 1.1
    if features.distance_from_price > 0.05:
        risk *= 1.1
    return clamp(risk, 0.0, 1.0)


def suggest_risk_management(success_probability: float, average_range: float = 0.02) -> Tuple[float, float]:
    """Stop loss and take profit as fractions of price"""
    stop_loss = average_range * (1 + (1 - success_probability))
    take_profit = average_range * (1 + success_probability) * 2
    return round(stop_loss, 4), round(take_profit, 4)


def _feature_category(name: str) -> str:
    lowered = name.lower()
    if "volume" in lowered:
        return "volume"
    if "time" in lowered or "recent" in lowered or "age" in lowered:
        return "time"
    if "market" in lowered or "trend" in lowered or "volatility" in lowered:
        return "market"
    if "pattern" in lowered:
        return "pattern"
    return "basic"


class LineQualityPredictor(LoggerMixin):
    """
    Success prediction for detected lines

    The primary scorer defaults to ``NeuralScorer`` when enabled in the
    predictor config; any failure of it is logged and the rule-based scorer
    answers instead. Recorded outcomes feed the model metrics.
    """

    def __init__(
        self,
        config: Optional[PredictorConfig] = None,
        scorer: Optional[Scorer] = None
    ):
        super().__init__()
        self.config = config or get_config().predictor
        self.fallback = RuleBasedScorer(self.config.min_probability, self.config.max_probability)
        self.scorer = scorer if scorer is not None else self._default_scorer()
        self.metrics_calculator = PredictionMetrics()

        self.outcomes: List[Dict[str, Any]] = []
        self.model_metrics: Dict[str, Any] = {
            'accuracy': 0.0,
            'precision': 0.0,
            'recall': 0.0,
            'f1_score': 0.0,
            'brier_score': None,
            'last_updated': int(time.time() * 1000),
            'training_samples': getattr(self.scorer, 'training_samples', 0),
            'outcomes_recorded': 0,
            'version': MODEL_VERSION,
        }

    def _default_scorer(self) -> Optional[Scorer]:
        if not self.config.use_neural_scorer:
            return None
        try:
            return NeuralScorer(self.config)
        except ModelTrainingException as e:
            self.logger.error("Neural scorer unavailable, using rules only", error=str(e))
            return None

    def predict(self, features: LineFeatures, vector: Optional[Sequence[float]] = None) -> MLPrediction:
        """
        Prediction for one line

        Args:
            features: Extracted line features
            vector: Normalized features (computed from ``features`` when omitted)

        Returns:
            MLPrediction with reasoning sorted by weight
        """
        vector = list(vector) if vector is not None else normalize_features(features)

        if self.scorer is not None:
            try:
                output = self.scorer.predict(features, vector)
            except ScorerUnavailableException as e:
                self.logger.warning("Scorer unavailable, using rules", scorer=self.scorer.name, error=str(e))
            except Exception as e:
                self.logger.error("Scorer failed, using rules", scorer=self.scorer.name, error=str(e), exc_info=True)
            else:
                stop_loss, take_profit = suggest_risk_management(
                    output.success_probability, self.config.average_range
                )
                return self._assemble(output, features, self.scorer.name, stop_loss, take_profit)

        try:
            output = self.fallback.predict(features, vector)
        except (TypeError, ValueError) as e:
            raise PredictionException(
                "Rule-based scoring failed",
                prediction_params={'vector_length': len(vector)},
                original_exception=e
            ) from e
        return self._assemble(output, features, self.fallback.name)

    @staticmethod
    def _assemble(
        output: ScorerOutput,
        features: LineFeatures,
        scorer_name: str,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None
    ) -> MLPrediction:
        probability = output.success_probability
        return MLPrediction(
            success_probability=probability,
            expected_bounces=output.expected_bounces,
            confidence_interval=output.confidence_interval,
            risk_score=calculate_risk_score(features, probability),
            reasoning=tuple(generate_reasoning(features)),
            suggested_stop_loss=stop_loss,
            suggested_take_profit=take_profit,
            scorer=scorer_name,
        )

    def get_feature_importance(self) -> List[Dict[str, Any]]:
        """Static feature weights with their category, heaviest first"""
        importance = [
            {'feature': name, 'importance': weight, 'category': _feature_category(name)}
            for name, weight in FeatureExtractor.get_feature_importance().items()
        ]
        return sorted(importance, key=lambda item: item['importance'], reverse=True)

    def get_model_metrics(self) -> Dict[str, Any]:
        return dict(self.model_metrics)

    def update_with_outcome(
        self,
        line_id: str,
        features: LineFeatures,
        actual_success: bool,
        actual_bounces: int
    ) -> Dict[str, Any]:
        """
        Record the observed outcome of a line and refresh the metrics

        The scorer is not retrained.

        Returns:
            Updated model metrics
        """
        prediction = self.predict(features)
        self.outcomes.append({
            'line_id': line_id,
            'predicted_probability': prediction.success_probability,
            'predicted_bounces': prediction.expected_bounces,
            'interval': prediction.confidence_interval,
            'actual_success': bool(actual_success),
            'actual_bounces': int(actual_bounces),
        })

        results = self.metrics_calculator.calculate_all_metrics(
            predicted_probabilities=[o['predicted_probability'] for o in self.outcomes],
            actual_success=[o['actual_success'] for o in self.outcomes],
            predicted_bounces=[o['predicted_bounces'] for o in self.outcomes],
            actual_bounces=[o['actual_bounces'] for o in self.outcomes],
            intervals=[o['interval'] for o in self.outcomes],
        )

        precision = results['precision'].value
        recall = results['recall'].value
        self.model_metrics.update({
            'accuracy': results['accuracy'].value,
            'precision': precision,
            'recall': recall,
            'f1_score': 2 * precision * recall / (precision + recall) if precision + recall > 0 else 0.0,
            'brier_score': results['brier_score'].value,
            'status': self.metrics_calculator.get_summary_report(results)['overall_status'],
            'last_updated': int(time.time() * 1000),
            'outcomes_recorded': len(self.outcomes),
        })

        self.logger.info(
            "Line outcome recorded",
            line_id=line_id,
            actual_success=bool(actual_success),
            outcomes=len(self.outcomes),
            accuracy=round(self.model_metrics['accuracy'], 4)
        )
        return self.get_model_metrics()


def predict_line_success(
    features: LineFeatures,
    vector: Optional[Sequence[float]] = None,
    predictor: Optional[LineQualityPredictor] = None
) -> MLPrediction:
    """Prediction through ``predictor`` or a fresh default predictor"""
    predictor = predictor or LineQualityPredictor()
    return predictor.predict(features, vector)
