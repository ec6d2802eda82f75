"""
Metrics for evaluating line quality predictions against observed outcomes.

Classification and calibration metrics for success probabilities, error
of the expected bounce count and coverage of the confidence interval.
"""

import numpy as np
from typing import Dict, List, Optional, Any, Sequence
from dataclasses import dataclass
from enum import Enum

from sklearn.metrics import (
    accuracy_score,
    brier_score_loss,
    mean_absolute_error,
    precision_score,
    recall_score,
)

from .logger import get_logger
from .exceptions import InvalidDataException

logger = get_logger(__name__)


class MetricType(str, Enum):
    """Metric families"""
    CLASSIFICATION = "classification"
    CALIBRATION = "calibration"
    REGRESSION = "regression"
    INTERVAL = "interval"


@dataclass
class MetricResult:
    """
    Single computed metric
    """
    name: str
    value: float
    metric_type: MetricType
    description: str
    higher_is_better: bool = True
    threshold_warning: Optional[float] = None
    threshold_critical: Optional[float] = None

    @property
    def status(self) -> str:
        """Status derived from the thresholds"""
        if self.threshold_critical is not None:
            if (self.higher_is_better and self.value < self.threshold_critical) or \
               (not self.higher_is_better and self.value > self.threshold_critical):
                return "critical"

        if self.threshold_warning is not None:
            if (self.higher_is_better and self.value < self.threshold_warning) or \
               (not self.higher_is_better and self.value > self.threshold_warning):
                return "warning"

        return "good"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value,
            "metric_type": self.metric_type.value,
            "description": self.description,
            "higher_is_better": self.higher_is_better,
            "status": self.status,
        }


class PredictionMetrics:
    """
    Evaluates success-probability predictions against recorded outcomes

    Supported metrics:
    - accuracy, precision and recall of the thresholded probability
    - Brier score of the raw probability
    - mean absolute error of the expected bounce count
    - coverage of the predicted confidence interval
    """

    def __init__(self, decision_threshold: float = 0.5):
        self.decision_threshold = decision_threshold
        self.thresholds = {
            "accuracy": {"warning": 0.6, "critical": 0.5},
            "brier_score": {"warning": 0.25, "critical": 0.35},
            "interval_coverage": {"warning": 0.6, "critical": 0.4},
        }

    def calculate_all_metrics(
        self,
        predicted_probabilities: Sequence[float],
        actual_success: Sequence[bool],
        predicted_bounces: Optional[Sequence[float]] = None,
        actual_bounces: Optional[Sequence[float]] = None,
        intervals: Optional[Sequence[Sequence[float]]] = None
    ) -> Dict[str, MetricResult]:
        """
        Compute every metric the inputs allow

        Args:
            predicted_probabilities: Predicted success probabilities
            actual_success: Observed outcomes
            predicted_bounces: Predicted bounce counts
            actual_bounces: Observed bounce counts
            intervals: Predicted [low, high] probability intervals

        Returns:
            Metrics keyed by name
        """
        probabilities = np.asarray(predicted_probabilities, dtype=float)
        outcomes = np.asarray(actual_success, dtype=int)
        self._validate_inputs(probabilities, outcomes)

        labels = (probabilities >= self.decision_threshold).astype(int)
        results: Dict[str, MetricResult] = {
            "accuracy": MetricResult(
                name="accuracy",
                value=float(accuracy_score(outcomes, labels)),
                metric_type=MetricType.CLASSIFICATION,
                description="Share of outcomes on the predicted side of the threshold",
                threshold_warning=self.thresholds["accuracy"]["warning"],
                threshold_critical=self.thresholds["accuracy"]["critical"],
            ),
            "precision": MetricResult(
                name="precision",
                value=float(precision_score(outcomes, labels, zero_division=0)),
                metric_type=MetricType.CLASSIFICATION,
                description="Share of predicted successes that succeeded",
            ),
            "recall": MetricResult(
                name="recall",
                value=float(recall_score(outcomes, labels, zero_division=0)),
                metric_type=MetricType.CLASSIFICATION,
                description="Share of successes that were predicted",
            ),
            "brier_score": MetricResult(
                name="brier_score",
                value=float(brier_score_loss(outcomes, probabilities, pos_label=1)),
                metric_type=MetricType.CALIBRATION,
                description="Mean squared error of the success probability",
                higher_is_better=False,
                threshold_warning=self.thresholds["brier_score"]["warning"],
                threshold_critical=self.thresholds["brier_score"]["critical"],
            ),
        }

        if predicted_bounces is not None and actual_bounces is not None:
            results["bounce_mae"] = MetricResult(
                name="bounce_mae",
                value=float(mean_absolute_error(actual_bounces, predicted_bounces)),
                metric_type=MetricType.REGRESSION,
                description="Mean absolute error of the expected bounce count",
                higher_is_better=False,
            )

        if intervals is not None:
            bounds = np.asarray(intervals, dtype=float).reshape(-1, 2)
            # A success is covered when the interval reaches the threshold, a failure when it dips below
            covered = np.where(outcomes == 1,
                               bounds[:, 1] >= self.decision_threshold,
                               bounds[:, 0] < self.decision_threshold)
            results["interval_coverage"] = MetricResult(
                name="interval_coverage",
                value=float(np.mean(covered)),
                metric_type=MetricType.INTERVAL,
                description="Share of outcomes consistent with the predicted interval",
                threshold_warning=self.thresholds["interval_coverage"]["warning"],
                threshold_critical=self.thresholds["interval_coverage"]["critical"],
            )

        logger.debug(
            "Prediction metrics computed",
            samples=len(outcomes),
            metrics={name: round(result.value, 4) for name, result in results.items()}
        )
        return results

    def _validate_inputs(self, probabilities: np.ndarray, outcomes: np.ndarray):
        if len(probabilities) == 0:
            raise InvalidDataException("No outcomes recorded")
        if len(probabilities) != len(outcomes):
            raise InvalidDataException(
                "Predictions and outcomes differ in length",
                data_info={"predictions": len(probabilities), "outcomes": len(outcomes)}
            )
        if np.any(~np.isfinite(probabilities)):
            raise InvalidDataException("Predicted probabilities contain non-finite values")

    def get_summary_report(self, metrics: Dict[str, MetricResult]) -> Dict[str, Any]:
        """Compact report with per-metric status"""
        statuses: List[str] = [m.status for m in metrics.values()]
        overall = "critical" if "critical" in statuses else "warning" if "warning" in statuses else "good"
        return {
            "overall_status": overall,
            "metrics": {name: m.to_dict() for name, m in metrics.items()},
        }
