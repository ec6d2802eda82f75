"""
Tests for the configuration layer.
"""

import pytest
from pydantic import ValidationError

from chart_proposals.config import (
    ChartAnalysisConfig,
    DetectionConfig,
    PredictorConfig,
    ScoringConfig,
    StreamingConfig,
    load_config_from_file,
    reload_config,
    save_config_to_file,
)
from chart_proposals.utils.exceptions import ConfigurationException


class TestChartAnalysisConfig:
    """Tests for ChartAnalysisConfig"""

    def test_defaults(self, test_config):
        """Test the default thresholds"""
        assert test_config.detection.peak_window_size == 10
        assert test_config.detection.min_data_points == 50
        assert test_config.scoring.min_confidence == 0.3
        assert test_config.predictor.max_probability == 0.95
        assert test_config.streaming.top_features == 4

    def test_currency_lookup_is_case_insensitive(self, test_config):
        """Test symbol lookup"""
        pair = test_config.get_currency_config("btcusdt")

        assert pair is not None
        assert pair.round_number_bonus == 1.2
        assert pair.weekend_reliability == 0.8
        assert test_config.get_currency_config("XRPUSDT") is None

    def test_symbols_stored_upper_case(self):
        """Test normalization of configured symbols"""
        streaming = StreamingConfig(currency_pairs={"solusdt": {"round_number_bonus": 1.05}})

        assert "SOLUSDT" in streaming.currency_pairs

    def test_yaml_round_trip(self, tmp_path):
        """Test saving and loading a configuration file"""
        config = ChartAnalysisConfig(
            detection=DetectionConfig(peak_window_size=7),
            predictor=PredictorConfig(use_neural_scorer=False, hidden_layer_sizes=(16, 8)),
        )
        path = tmp_path / "config" / "chart.yaml"

        save_config_to_file(config, path)
        loaded = load_config_from_file(path)

        assert loaded.detection.peak_window_size == 7
        assert loaded.predictor.use_neural_scorer is False
        assert tuple(loaded.predictor.hidden_layer_sizes) == (16, 8)
        assert loaded.get_currency_config("ETHUSDT").round_number_bonus == 1.15

    def test_missing_file(self, tmp_path):
        """Test loading a file that does not exist"""
        with pytest.raises(FileNotFoundError):
            load_config_from_file(tmp_path / "absent.yaml")

    def test_environment_override(self, monkeypatch):
        """Test section settings read from the environment"""
        monkeypatch.setenv("CHART_DETECTION_PEAK_WINDOW_SIZE", "5")

        assert DetectionConfig().peak_window_size == 5

    def test_malformed_yaml(self, tmp_path):
        """Test that unparsable files are reported as configuration errors"""
        path = tmp_path / "broken.yaml"
        path.write_text("detection: [unclosed\n", encoding="utf-8")

        with pytest.raises(ConfigurationException):
            load_config_from_file(path)

    def test_invalid_settings_in_file(self, tmp_path):
        """Test that rejected values name the offending setting"""
        path = tmp_path / "invalid.yaml"
        path.write_text("scoring:\n  min_confidence: 0.6\n  high_confidence: 0.5\n", encoding="utf-8")

        with pytest.raises(ConfigurationException) as exc_info:
            load_config_from_file(path)

        assert exc_info.value.error_code == "CONFIGURATION_ERROR"
        assert any(key.startswith("scoring") for key in exc_info.value.details["invalid_params"])

    def test_reload_reads_environment(self, monkeypatch):
        """Test that reloading picks up new environment values"""
        monkeypatch.setenv("CHART_SERVICE_NAME", "chart-proposals-test")

        assert reload_config().service_name == "chart-proposals-test"
        monkeypatch.delenv("CHART_SERVICE_NAME")
        reload_config()


class TestValidators:
    """Tests for the configuration validators"""

    def test_weights_must_sum_to_one(self):
        """Test rejection of unbalanced weights"""
        with pytest.raises(ValidationError):
            ScoringConfig(trendline_weights={"time_span": 0.5, "volume": 0.5, "recency": 0.5})

    def test_high_gate_above_min_gate(self):
        """Test the confidence gate ordering"""
        with pytest.raises(ValidationError):
            ScoringConfig(min_confidence=0.6, high_confidence=0.5)

    def test_span_ordering(self):
        """Test the trendline span bounds"""
        with pytest.raises(ValidationError):
            DetectionConfig(trendline_min_span=50, trendline_max_span=40)

    def test_fibonacci_ratios_sorted(self):
        """Test that ratios are kept in ascending order"""
        config = DetectionConfig(fibonacci_levels=[0.618, 0.0, 1.0, 0.5])

        assert config.fibonacci_levels == [0.0, 0.5, 0.618, 1.0]

    def test_negative_ratio_rejected(self):
        """Test rejection of negative Fibonacci ratios"""
        with pytest.raises(ValidationError):
            DetectionConfig(fibonacci_extensions=[-1.0, 1.618])

    def test_probability_bounds(self):
        """Test the predictor clamp ordering"""
        with pytest.raises(ValidationError):
            PredictorConfig(min_probability=0.8, max_probability=0.5)

    def test_synthetic_sample_minimum(self):
        """Test the lower bound on bootstrap samples"""
        with pytest.raises(ValidationError):
            PredictorConfig(synthetic_samples=10)
