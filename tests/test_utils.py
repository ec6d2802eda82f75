"""
Tests for the shared utilities and bar preprocessing.
"""

import re

import pandas as pd
import pytest

from chart_proposals.preprocessing.data_processor import (
    PriceBar,
    PriceDataProcessor,
    coerce_bars,
    frame_to_bars,
    resample_bars,
    resample_bars_by_factor,
    validate_ohlcv_data,
)
from chart_proposals.utils.exceptions import (
    ChartAnalysisException,
    InsufficientDataException,
    InvalidDataException,
    create_error_response,
    handle_analysis_exception,
)
from chart_proposals.utils.helpers import (
    calculate_percentage_change,
    clamp,
    format_price,
    generate_proposal_id,
    get_higher_timeframe,
    linear_regression,
    normalize_symbol,
    parse_timeframe_to_minutes,
    safe_divide,
    validate_symbol,
    validate_timeframe,
)
from chart_proposals.utils.metrics import MetricResult, MetricType, PredictionMetrics

from conftest import HOUR, START_TIME, bars_from_closes


class TestHelpers:
    """Tests for the numeric and interval helpers"""

    def test_safe_divide(self):
        """Test division with zero and invalid denominators"""
        assert safe_divide(6, 3) == 2.0
        assert safe_divide(1, 0) is None
        assert safe_divide(1, 0, default=0.0) == 0.0
        assert safe_divide("x", 1, default=-1.0) == -1.0

    def test_clamp(self):
        """Test bounding and NaN handling"""
        assert clamp(2.0) == 1.0
        assert clamp(-0.5) == 0.0
        assert clamp(0.3, 0.1, 0.95) == 0.3
        assert clamp(float('nan'), 0.1, 0.95) == 0.1

    def test_linear_regression(self):
        """Test an exact line and the degenerate cases"""
        slope, intercept, r_squared = linear_regression([0, 1, 2], [1, 3, 5])

        assert slope == pytest.approx(2.0)
        assert intercept == pytest.approx(1.0)
        assert r_squared == pytest.approx(1.0)
        assert linear_regression([0, 1, 2], [4, 4, 4]) == (0.0, 4.0, 0.0)
        assert linear_regression([1], [7]) == (0.0, 7.0, 0.0)

    def test_percentage_change(self):
        """Test relative changes"""
        assert calculate_percentage_change(100, 110) == pytest.approx(10.0)
        assert calculate_percentage_change(0, 0) == 0.0
        assert calculate_percentage_change(0, 5) == float('inf')

    def test_proposal_id_format(self):
        """Test the id layout and uniqueness"""
        ids = {generate_proposal_id("sr") for _ in range(50)}

        assert len(ids) == 50
        assert all(re.fullmatch(r"sr_\d{13}_[0-9a-z]{9}", i) for i in ids)

    def test_format_price(self):
        """Test the magnitude-dependent precision"""
        assert format_price(50000) == "50,000.00"
        assert format_price(1.5) == "1.5000"
        assert format_price(0.05) == "0.050000"
        assert format_price(0.001) == "0.00100000"
        assert format_price("abc") == "N/A"

    def test_timeframes(self):
        """Test interval validation and lookup"""
        assert validate_timeframe("1H")
        assert parse_timeframe_to_minutes("4h") == 240
        assert get_higher_timeframe("1h") == "4h"
        assert get_higher_timeframe("1M") is None
        assert validate_timeframe("7h", raise_error=False) is False
        with pytest.raises(InvalidDataException):
            validate_timeframe("7h")

    def test_symbols(self):
        """Test symbol normalization and validation"""
        assert normalize_symbol(" btc/usdt ") == "BTCUSDT"
        assert validate_symbol("eth-usdt")
        assert validate_symbol("B", raise_error=False) is False
        with pytest.raises(InvalidDataException):
            validate_symbol(42)


class TestExceptions:
    """Tests for the exception hierarchy"""

    def test_details_and_serialization(self):
        """Test the structured form of an error"""
        exc = InsufficientDataException("Too few bars", required_samples=50, provided_samples=10)
        payload = exc.to_dict()

        assert isinstance(exc, ChartAnalysisException)
        assert payload['error_code'] == "INSUFFICIENT_DATA"
        assert payload['details'] == {'required_samples': 50, 'provided_samples': 10}
        assert str(exc).startswith("[INSUFFICIENT_DATA] Too few bars")

    def test_error_response(self):
        """Test the transport error payload"""
        response = create_error_response(InvalidDataException("bad bar", validation_errors={'high': 'too low'}))

        assert response['success'] is False
        assert response['error']['type'] == "InvalidDataException"
        assert response['error']['code'] == "INVALID_DATA"
        assert response['error']['details']['validation_errors'] == {'high': 'too low'}

    def test_handler_maps_standard_errors(self):
        """Test the decorator mapping"""
        @handle_analysis_exception
        def fail(exc):
            raise exc

        with pytest.raises(InvalidDataException) as value_error:
            fail(ValueError("not a number"))
        assert value_error.value.details['original_type'] == "ValueError"

        with pytest.raises(InvalidDataException):
            fail(KeyError("close"))

        with pytest.raises(ChartAnalysisException) as unknown:
            fail(RuntimeError("boom"))
        assert type(unknown.value) is ChartAnalysisException

        with pytest.raises(InsufficientDataException):
            fail(InsufficientDataException("empty"))


class TestPredictionMetrics:
    """Tests for PredictionMetrics"""

    def test_classification_and_calibration(self):
        """Test metrics over a small outcome history"""
        results = PredictionMetrics().calculate_all_metrics(
            predicted_probabilities=[0.8, 0.3, 0.6, 0.2],
            actual_success=[True, False, False, False],
            predicted_bounces=[3, 1, 2, 1],
            actual_bounces=[3, 0, 0, 1],
            intervals=[(0.7, 0.9), (0.2, 0.4), (0.5, 0.7), (0.1, 0.3)],
        )

        assert results['accuracy'].value == pytest.approx(0.75)
        assert results['precision'].value == pytest.approx(0.5)
        assert results['recall'].value == pytest.approx(1.0)
        assert results['brier_score'].value == pytest.approx(0.1325)
        assert results['bounce_mae'].value == pytest.approx(0.75)
        assert results['interval_coverage'].value == pytest.approx(0.75)

    def test_summary_report(self):
        """Test the overall status of a report"""
        metrics = PredictionMetrics()
        good = metrics.calculate_all_metrics([0.9, 0.1], [True, False])
        poor = {
            'accuracy': MetricResult(
                name="accuracy", value=0.4, metric_type=MetricType.CLASSIFICATION,
                description="", threshold_warning=0.6, threshold_critical=0.5
            )
        }

        assert metrics.get_summary_report(good)['overall_status'] == "good"
        assert metrics.get_summary_report(poor)['overall_status'] == "critical"

    def test_invalid_inputs(self):
        """Test empty and mismatched histories"""
        metrics = PredictionMetrics()

        with pytest.raises(InvalidDataException):
            metrics.calculate_all_metrics([], [])
        with pytest.raises(InvalidDataException):
            metrics.calculate_all_metrics([0.5, 0.6], [True])


class TestBarPreprocessing:
    """Tests for bar conversion, validation and resampling"""

    @pytest.fixture
    def hourly_bars(self):
        return bars_from_closes([100.0 + i for i in range(8)])

    def test_processor_sorts_and_deduplicates(self, hourly_bars):
        """Test time ordering and duplicate removal"""
        replacement = PriceBar(hourly_bars[2].time, 102.0, 120.0, 90.0, 110.0, 5.0)
        data = list(reversed(hourly_bars)) + [replacement]

        bars = PriceDataProcessor(" btc/usdt", "1H").process(data)

        assert [b.time for b in bars] == [b.time for b in hourly_bars]
        assert bars[2] == replacement

    def test_processor_normalizes_request(self):
        """Test symbol and interval normalization"""
        processor = PriceDataProcessor("eth-usdt", "4H")

        assert processor.symbol == "ETHUSDT"
        assert processor.interval == "4h"
        with pytest.raises(InvalidDataException):
            PriceDataProcessor("BTCUSDT", "7h")

    def test_processor_rejects_broken_bars(self, hourly_bars):
        """Test OHLC relation checks and unparsable values"""
        broken = PriceBar(START_TIME, 100.0, 99.0, 95.0, 101.0, 10.0)
        with pytest.raises(InvalidDataException):
            PriceDataProcessor("BTCUSDT").process([broken])

        unparsable = dict(hourly_bars[0].to_dict(), close="n/a")
        with pytest.raises(InvalidDataException):
            PriceDataProcessor("BTCUSDT").process([unparsable])

    def test_coerce_inputs(self, hourly_bars):
        """Test mappings, DataFrames and unsupported items"""
        mappings = [dict(b.to_dict(), timestamp=b.time) for b in hourly_bars]
        for mapping in mappings:
            del mapping['time']

        assert coerce_bars(mappings) == hourly_bars
        assert coerce_bars(pd.DataFrame([b.to_dict() for b in hourly_bars])) == hourly_bars
        with pytest.raises(InvalidDataException):
            coerce_bars([(1, 2, 3)])
        with pytest.raises(InvalidDataException):
            coerce_bars([{'time': START_TIME, 'open': 1.0}])

    def test_frame_with_datetime_index(self):
        """Test timestamps taken from a DatetimeIndex"""
        index = pd.date_range(pd.Timestamp(START_TIME, unit='s', tz='UTC'), periods=3, freq='h')
        df = pd.DataFrame(
            {'open': [1.0, 2.0, 3.0], 'high': [2.0, 3.0, 4.0], 'low': [0.5, 1.5, 2.5],
             'close': [1.5, 2.5, 3.5], 'volume': [10.0, 20.0, 30.0]},
            index=index,
        )

        bars = frame_to_bars(df)

        assert [b.time for b in bars] == [START_TIME, START_TIME + HOUR, START_TIME + 2 * HOUR]

    def test_validate_ohlcv_data(self):
        """Test the column and value checks"""
        with pytest.raises(InvalidDataException):
            validate_ohlcv_data(pd.DataFrame({'open': [1.0], 'high': [1.0]}))

        negative = pd.DataFrame(
            {'open': [1.0], 'high': [2.0], 'low': [0.5], 'close': [1.5], 'volume': [-1.0]}
        )
        with pytest.raises(InvalidDataException):
            validate_ohlcv_data(negative)

    def test_resample_to_interval(self, hourly_bars):
        """Test aggregation of hourly bars into 4h bars"""
        resampled = resample_bars(hourly_bars, "4h")

        assert len(resampled) == 2
        first = resampled[0]
        assert first.time == START_TIME
        assert first.open == hourly_bars[0].open
        assert first.high == max(b.high for b in hourly_bars[:4])
        assert first.low == min(b.low for b in hourly_bars[:4])
        assert first.close == hourly_bars[3].close
        assert first.volume == pytest.approx(4000.0)
        assert resampled[1].time == START_TIME + 4 * HOUR

    def test_resample_by_factor(self, hourly_bars):
        """Test aggregation with an inferred bar spacing"""
        assert resample_bars_by_factor(hourly_bars, 4) == resample_bars(hourly_bars, "4h")
        assert resample_bars_by_factor(hourly_bars[:1], 4) == hourly_bars[:1]


class TestPackageInfo:
    """Tests for the package metadata"""

    def test_package_info(self):
        """Test the reported version and timeframe count"""
        from chart_proposals import __version__, get_package_info

        info = get_package_info()

        assert info['version'] == __version__
        assert info['supported_timeframes'] == 15
