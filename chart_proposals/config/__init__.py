"""
Configuration for the chart proposal engine
"""

from .analysis_config import (
    ChartAnalysisConfig,
    DetectionConfig,
    ScoringConfig,
    PredictorConfig,
    StreamingConfig,
    MonitoringConfig,
    CurrencyPairConfig,
    get_config,
    reload_config,
    load_config_from_file,
    save_config_to_file,
    setup_logging
)

__all__ = [
    "ChartAnalysisConfig",
    "DetectionConfig",
    "ScoringConfig",
    "PredictorConfig",
    "StreamingConfig",
    "MonitoringConfig",
    "CurrencyPairConfig",
    "get_config",
    "reload_config",
    "load_config_from_file",
    "save_config_to_file",
    "setup_logging"
]
