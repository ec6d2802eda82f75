"""
Tests for drawing data validation.
"""

from dataclasses import asdict

import pytest

from chart_proposals.proposals import DEFAULT_FIBONACCI_LEVELS, validate_drawing_data
from chart_proposals.proposals.styles import PALETTE
from chart_proposals.utils.exceptions import InvalidDataException


def two_points():
    return [{'time': 1700000000, 'value': 50000.0}, {'time': 1700036000, 'value': 51000.0}]


class TestValidateDrawingData:
    """Tests for validate_drawing_data"""

    def test_valid_trendline(self):
        """Test that a valid trendline gets the default style"""
        drawing = validate_drawing_data({'type': 'trendline', 'points': two_points()})

        assert drawing['type'] == 'trendline'
        assert len(drawing['points']) == 2
        assert drawing['style']['lineStyle'] in ('solid', 'dashed', 'dotted')
        assert drawing['levels'] is None

    def test_style_overrides_default(self):
        """Test that supplied style keys win over the defaults"""
        drawing = validate_drawing_data({
            'type': 'trendline',
            'points': two_points(),
            'style': {'color': '#123456', 'lineWidth': 3},
        })

        assert drawing['style']['color'] == '#123456'
        assert drawing['style']['lineWidth'] == 3

    def test_fibonacci_default_levels(self):
        """Test that Fibonacci drawings receive the standard levels"""
        drawing = validate_drawing_data({'type': 'fibonacci', 'points': two_points()})

        assert drawing['levels'] == DEFAULT_FIBONACCI_LEVELS

    def test_horizontal_requires_price(self):
        """Test that a horizontal line without price is rejected"""
        with pytest.raises(InvalidDataException) as exc_info:
            validate_drawing_data({'type': 'horizontal', 'points': two_points()[:1]})

        assert 'price' in exc_info.value.details['validation_errors']

    def test_horizontal_with_price(self):
        """Test a valid horizontal line"""
        drawing = validate_drawing_data({
            'type': 'horizontal',
            'points': two_points()[:1],
            'price': 50000.0,
        })

        assert drawing['price'] == 50000.0

    def test_trendline_needs_two_points(self):
        """Test the point count of two-point drawings"""
        points = two_points() + [{'time': 1700072000, 'value': 52000.0}]
        with pytest.raises(InvalidDataException) as exc_info:
            validate_drawing_data({'type': 'trendline', 'points': points})

        assert 'points' in exc_info.value.details['validation_errors']

    def test_all_errors_reported(self):
        """Test that every failing check is listed"""
        with pytest.raises(InvalidDataException) as exc_info:
            validate_drawing_data({
                'type': 'trendline',
                'points': [{'time': -1, 'value': 0}, {'time': 1700000000, 'value': 50000.0}],
                'style': {'color': 'red', 'lineWidth': 11, 'lineStyle': 'wavy'},
            })

        errors = exc_info.value.details['validation_errors']
        assert set(errors) >= {
            'points[0].time',
            'points[0].value',
            'style.color',
            'style.lineWidth',
            'style.lineStyle',
        }

    def test_unknown_type(self):
        """Test rejection of unknown drawing types"""
        with pytest.raises(InvalidDataException):
            validate_drawing_data({'type': 'circle', 'points': two_points()})

    def test_non_finite_values_rejected(self):
        """Test that NaN and booleans are not accepted as coordinates"""
        with pytest.raises(InvalidDataException):
            validate_drawing_data({
                'type': 'trendline',
                'points': [{'time': True, 'value': float('nan')}, {'time': 1700000000, 'value': 1.0}],
            })

    def test_palette_colors_are_valid(self):
        """Test that every palette color passes validation"""
        for color in asdict(PALETTE).values():
            drawing = validate_drawing_data({
                'type': 'trendline', 'points': two_points(), 'style': {'color': color}
            })
            assert drawing['style']['color'] == color
