"""
Configuration management for the chart proposal engine.

Settings for extrema detection, level clustering, confidence scoring, the
line quality predictor and per-instrument adjustments, built on
pydantic-settings so each section can be overridden from the environment.
"""

from typing import Dict, List, Optional, Union, Tuple, Literal
from pathlib import Path
from enum import Enum

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic.types import PositiveInt, PositiveFloat
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..utils.exceptions import ConfigurationException
from ..utils.logger import configure_logging


class LogLevel(str, Enum):
    """Logging levels"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class DetectionConfig(BaseSettings):
    """
    Extrema, level and pattern detection parameters
    """

    # === Swing points ===
    peak_window_size: PositiveInt = Field(
        default=10,
        ge=1,
        le=100,
        description="Bars on each side a swing point must dominate"
    )

    # === Price level clustering ===
    histogram_bins: PositiveInt = Field(
        default=100,
        ge=10,
        le=1000,
        description="Bins of the high/low price histogram"
    )

    seed_percentile: float = Field(
        default=70.0,
        ge=0.0,
        le=100.0,
        description="Bin count percentile a bin must reach to seed a level"
    )

    touch_tolerance: PositiveFloat = Field(
        default=0.002,
        le=0.05,
        description="Touch band as a fraction of the level price"
    )

    cluster_threshold: PositiveFloat = Field(
        default=0.005,
        le=0.1,
        description="Merge distance as a fraction of the latest close"
    )

    min_touches: PositiveInt = Field(
        default=2,
        ge=1,
        description="Touches required for a level to be kept"
    )

    # === Trendlines ===
    trendline_min_points: PositiveInt = Field(default=2, ge=2, description="Extrema needed to draw lines")
    trendline_min_span: PositiveInt = Field(default=10, description="Minimum bars between anchors")
    trendline_max_span: PositiveInt = Field(default=200, description="Maximum bars between anchors")
    trendline_candidates: PositiveInt = Field(default=5, le=50, description="Candidates kept per direction")
    trendline_fit_tolerance: PositiveFloat = Field(
        default=0.0015,
        le=0.05,
        description="Regression inclusion band as a fraction of the price range"
    )

    # === Fibonacci ===
    fibonacci_recent_swings: PositiveInt = Field(default=10, description="Most recent swings considered")
    fibonacci_pair_lookahead: PositiveInt = Field(default=5, description="Max list distance of paired swings")
    fibonacci_min_index_gap: PositiveInt = Field(default=10, description="Min bar gap between paired swings")
    fibonacci_top_pairs: PositiveInt = Field(default=5, description="Best swing pairs kept")
    fibonacci_levels: List[float] = Field(
        default_factory=lambda: [0.0, 0.236, 0.382, 0.5, 0.618, 0.786, 1.0],
        description="Retracement ratios"
    )
    fibonacci_extensions: List[float] = Field(
        default_factory=lambda: [1.272, 1.414, 1.618, 2.0, 2.618],
        description="Extension ratios"
    )

    # === Patterns and general ===
    pattern_min_confidence: float = Field(default=0.7, ge=0.0, le=1.0, description="Pattern gate")
    recent_candles: PositiveInt = Field(default=20, description="Bars that count as recent")
    min_data_points: PositiveInt = Field(default=50, description="Bars needed for a generation run")
    default_max_proposals: PositiveInt = Field(default=5, le=50, description="Default global proposal cut")

    @field_validator("trendline_max_span")
    @classmethod
    def validate_span(cls, v, info):
        """Max span must exceed the min span"""
        min_span = info.data.get("trendline_min_span")
        if min_span is not None and v <= min_span:
            raise ValueError("trendline_max_span must be greater than trendline_min_span")
        return v

    @field_validator("fibonacci_levels", "fibonacci_extensions")
    @classmethod
    def validate_ratios(cls, v):
        """Ratios are sorted and non-negative"""
        if any(r < 0 for r in v):
            raise ValueError("Fibonacci ratios must be non-negative")
        return sorted(v)

    model_config = SettingsConfigDict(env_prefix="CHART_DETECTION_", case_sensitive=False)


class ScoringConfig(BaseSettings):
    """
    Confidence thresholds and scoring weights
    """

    min_confidence: float = Field(default=0.3, ge=0.0, le=1.0, description="Proposal gate")
    high_confidence: float = Field(default=0.7, ge=0.0, le=1.0, description="High priority gate")
    high_volume_ratio: PositiveFloat = Field(default=1.5, description="Volume ratio counted as high")
    low_volume_ratio: PositiveFloat = Field(default=0.5, description="Volume ratio counted as low")
    good_fit_r_squared: float = Field(default=0.8, ge=0.0, le=1.0, description="Good regression fit")
    acceptable_fit_r_squared: float = Field(default=0.6, ge=0.0, le=1.0, description="Acceptable fit")
    flat_angle: PositiveFloat = Field(default=5.0, description="Angle below which a line is flat")
    steep_angle: PositiveFloat = Field(default=45.0, description="Angle above which a line is steep")
    max_outlier_ratio: float = Field(default=0.2, ge=0.0, le=1.0, description="Tolerated outlier share")

    trendline_weights: Dict[str, float] = Field(
        default_factory=lambda: {"time_span": 0.4, "volume": 0.4, "recency": 0.2},
        description="Trendline candidate score weights"
    )

    confidence_weights: Dict[str, float] = Field(
        default_factory=lambda: {
            "base": 0.2,
            "touches": 0.15,
            "volume": 0.15,
            "timespan": 0.1,
            "r_squared": 0.1,
            "pattern": 0.1,
            "mtf_alignment": 0.1,
            "recent_activity": 0.1,
        },
        description="Enhanced confidence factor weights"
    )

    @field_validator("trendline_weights", "confidence_weights")
    @classmethod
    def validate_weights(cls, v):
        """Weights must sum to one"""
        if abs(sum(v.values()) - 1.0) > 1e-6:
            raise ValueError(f"Weights must sum to 1.0, got {sum(v.values()):.4f}")
        return v

    @field_validator("high_confidence")
    @classmethod
    def validate_confidence_gates(cls, v, info):
        """High gate cannot sit below the minimum gate"""
        minimum = info.data.get("min_confidence")
        if minimum is not None and v < minimum:
            raise ValueError("high_confidence must be >= min_confidence")
        return v

    model_config = SettingsConfigDict(env_prefix="CHART_SCORING_", case_sensitive=False)


class PredictorConfig(BaseSettings):
    """
    Line quality predictor settings
    """

    use_neural_scorer: bool = Field(default=True, description="Bootstrap the neural scorer")
    hidden_layer_sizes: Tuple[int, ...] = Field(default=(32, 16), description="Hidden layer widths")
    synthetic_samples: PositiveInt = Field(default=1000, ge=100, le=100000, description="Bootstrap samples")
    learning_rate: PositiveFloat = Field(default=0.001, le=1.0, description="Adam learning rate")
    batch_size: PositiveInt = Field(default=32, description="Mini-batch size")
    max_iter: PositiveInt = Field(default=200, le=5000, description="Training epochs")
    random_state: int = Field(default=42, description="Seed of data and weights")
    average_range: PositiveFloat = Field(default=0.02, le=1.0, description="Assumed average bar range")
    min_probability: float = Field(default=0.1, ge=0.0, le=1.0, description="Lower probability clamp")
    max_probability: float = Field(default=0.95, ge=0.0, le=1.0, description="Upper probability clamp")

    @field_validator("max_probability")
    @classmethod
    def validate_probability_bounds(cls, v, info):
        """Upper clamp above lower clamp"""
        minimum = info.data.get("min_probability")
        if minimum is not None and v <= minimum:
            raise ValueError("max_probability must be greater than min_probability")
        return v

    model_config = SettingsConfigDict(env_prefix="CHART_PREDICTOR_", case_sensitive=False)


class CurrencyPairConfig(BaseModel):
    """
    Instrument-specific adjustment factors
    """
    round_number_bonus: PositiveFloat = Field(default=1.0, description="Multiplier near psychological prices")
    weekend_reliability: PositiveFloat = Field(default=1.0, le=1.0, description="Multiplier on weekends")
    news_impact: PositiveFloat = Field(default=1.0, description="Sensitivity to news flow")
    liquidity_threshold: PositiveFloat = Field(default=100.0, description="Minimum meaningful volume")


class StreamingConfig(BaseSettings):
    """
    Streaming analysis settings
    """

    currency_pairs: Dict[str, CurrencyPairConfig] = Field(
        default_factory=lambda: {
            "BTCUSDT": CurrencyPairConfig(
                round_number_bonus=1.2, weekend_reliability=0.8,
                news_impact=1.5, liquidity_threshold=1000
            ),
            "ETHUSDT": CurrencyPairConfig(
                round_number_bonus=1.15, weekend_reliability=0.85,
                news_impact=1.3, liquidity_threshold=800
            ),
            "BNBUSDT": CurrencyPairConfig(
                round_number_bonus=1.1, weekend_reliability=0.9,
                news_impact=1.2, liquidity_threshold=500
            ),
        },
        description="Adjustment factors per symbol"
    )

    top_features: PositiveInt = Field(default=4, le=23, description="Features reported while extracting")

    @field_validator("currency_pairs")
    @classmethod
    def normalize_symbols(cls, v):
        """Symbols are stored upper-case"""
        return {symbol.upper(): pair for symbol, pair in v.items()}

    model_config = SettingsConfigDict(env_prefix="CHART_STREAMING_", case_sensitive=False)


class MonitoringConfig(BaseSettings):
    """
    Logging configuration
    """

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_format: Literal["json", "text", "colored"] = Field(default="json", description="Log format")
    log_file: Optional[str] = Field(default=None, description="Log file")

    model_config = SettingsConfigDict(env_prefix="CHART_MONITORING_", case_sensitive=False)


class ChartAnalysisConfig(BaseSettings):
    """
    Root configuration of the chart proposal engine
    """

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment"
    )

    service_name: str = Field(default="chart-proposals", description="Service name")
    version: str = Field(default="1.0.0", description="Service version")

    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    predictor: PredictorConfig = Field(default_factory=PredictorConfig)
    streaming: StreamingConfig = Field(default_factory=StreamingConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    def get_currency_config(self, symbol: str) -> Optional[CurrencyPairConfig]:
        """
        Adjustment factors for a symbol

        Args:
            symbol: Trading pair

        Returns:
            Configuration or None for unknown symbols
        """
        return self.streaming.currency_pairs.get(symbol.upper())

    model_config = SettingsConfigDict(
        env_prefix="CHART_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


# Global configuration
_config: Optional[ChartAnalysisConfig] = None


def get_config() -> ChartAnalysisConfig:
    """
    Global configuration (singleton)

    Returns:
        ChartAnalysisConfig instance
    """
    global _config
    if _config is None:
        _config = ChartAnalysisConfig()
    return _config


def reload_config() -> ChartAnalysisConfig:
    """
    Rebuild the global configuration from the environment

    Returns:
        New ChartAnalysisConfig instance
    """
    global _config
    _config = ChartAnalysisConfig()
    return _config


def load_config_from_file(config_path: Union[str, Path]) -> ChartAnalysisConfig:
    """
    Load configuration from a YAML file

    Args:
        config_path: Path of the YAML file

    Returns:
        ChartAnalysisConfig instance

    Raises:
        FileNotFoundError: The file does not exist
        ConfigurationException: The file is not valid YAML or holds invalid settings
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationException(f"Malformed config file {config_path}: {e}") from e

    try:
        return ChartAnalysisConfig(**config_data)
    except ValidationError as e:
        raise ConfigurationException(
            f"Invalid settings in {config_path}",
            invalid_params={".".join(str(p) for p in err["loc"]): err["msg"] for err in e.errors()}
        ) from e


def save_config_to_file(config: ChartAnalysisConfig, config_path: Union[str, Path]) -> None:
    """
    Save configuration to a YAML file

    Args:
        config: Configuration to save
        config_path: Target path
    """
    config_path = Path(config_path)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, 'w', encoding='utf-8') as f:
        yaml.safe_dump(config.model_dump(mode="json"), f, default_flow_style=False, sort_keys=False)


def setup_logging(config: Optional[ChartAnalysisConfig] = None) -> None:
    """
    Apply the monitoring section to the package logging

    Args:
        config: Configuration to apply (global configuration by default)
    """
    config = config or get_config()
    configure_logging(
        level=config.monitoring.log_level.value,
        format_type=config.monitoring.log_format,
        log_file=config.monitoring.log_file,
        service_name=config.service_name,
        service_version=config.version,
        environment=config.environment,
        force=True
    )
