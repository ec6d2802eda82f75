"""
Line quality prediction

- ``FeatureExtractor`` / ``normalize_features``: 23 quality signals of a line
- ``LineQualityPredictor``: neural scorer with a rule-based fallback
- ``StreamingAnalysisPipeline``: staged analysis with progress updates
"""

from .feature_extractor import (
    DetectedLine,
    LineFeatures,
    FeatureExtractor,
    FEATURE_ORDER,
    FEATURE_RANGES,
    FEATURE_COUNT,
    extract_features,
    normalize_features
)
from .line_predictor import (
    MLPrediction,
    MLReasoning,
    ScorerOutput,
    Scorer,
    RuleBasedScorer,
    NeuralScorer,
    LineQualityPredictor,
    generate_reasoning,
    calculate_risk_score,
    suggest_risk_management,
    predict_line_success
)
from .streaming_analyzer import (
    StreamingStage,
    StreamingUpdate,
    CancellationToken,
    StreamingAnalysisPipeline,
    important_features
)

__all__ = [
    "DetectedLine",
    "LineFeatures",
    "FeatureExtractor",
    "FEATURE_ORDER",
    "FEATURE_RANGES",
    "FEATURE_COUNT",
    "extract_features",
    "normalize_features",
    "MLPrediction",
    "MLReasoning",
    "ScorerOutput",
    "Scorer",
    "RuleBasedScorer",
    "NeuralScorer",
    "LineQualityPredictor",
    "generate_reasoning",
    "calculate_risk_score",
    "suggest_risk_management",
    "predict_line_success",
    "StreamingStage",
    "StreamingUpdate",
    "CancellationToken",
    "StreamingAnalysisPipeline",
    "important_features"
]
