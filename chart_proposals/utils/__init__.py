"""
Utility modules for the chart proposal engine

Structured logging, the exception hierarchy, prediction metrics and
shared numeric helpers.
"""

from .logger import get_logger, configure_logging, LoggerMixin, timed_operation
from .exceptions import (
    ChartAnalysisException,
    InsufficientDataException,
    InvalidDataException,
    FeatureExtractionException,
    ModelTrainingException,
    ScorerUnavailableException,
    PredictionException,
    AnalysisCancelledException,
    ConfigurationException,
    handle_analysis_exception,
    create_error_response
)
from .metrics import PredictionMetrics, MetricResult
from .helpers import (
    normalize_symbol,
    validate_symbol,
    validate_timeframe,
    parse_timeframe_to_minutes,
    get_higher_timeframe,
    generate_proposal_id,
    linear_regression,
    format_price,
    safe_divide,
    clamp
)

__all__ = [
    # Logging
    "get_logger",
    "configure_logging",
    "LoggerMixin",
    "timed_operation",

    # Exceptions
    "ChartAnalysisException",
    "InsufficientDataException",
    "InvalidDataException",
    "FeatureExtractionException",
    "ModelTrainingException",
    "ScorerUnavailableException",
    "PredictionException",
    "AnalysisCancelledException",
    "ConfigurationException",
    "handle_analysis_exception",
    "create_error_response",

    # Metrics
    "PredictionMetrics",
    "MetricResult",

    # Helpers
    "normalize_symbol",
    "validate_symbol",
    "validate_timeframe",
    "parse_timeframe_to_minutes",
    "get_higher_timeframe",
    "generate_proposal_id",
    "linear_regression",
    "format_price",
    "safe_divide",
    "clamp"
]
