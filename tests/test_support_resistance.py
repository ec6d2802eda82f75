"""
Tests for swing point detection, price level clustering and level merging.
"""

import pytest

from chart_proposals.config.analysis_config import DetectionConfig
from chart_proposals.preprocessing.data_processor import PriceBar
from chart_proposals.support_resistance.algorithms import (
    PriceLevelClusterer,
    PsychologicalLevelDetector,
    SwingKind,
    SwingPointDetector,
)
from chart_proposals.support_resistance.level_manager import (
    LevelKind,
    LevelManager,
    LevelTouch,
    PriceLevel,
)

from conftest import START_TIME, HOUR


@pytest.fixture
def detector():
    return SwingPointDetector(DetectionConfig())


@pytest.fixture
def clusterer():
    return PriceLevelClusterer(DetectionConfig())


def touch(i, price, kind=LevelKind.SUPPORT, volume=100.0):
    return LevelTouch(time=START_TIME + i * HOUR, price=price, volume=volume, kind=kind)


class TestSwingPointDetector:
    """Tests for SwingPointDetector"""

    def test_too_few_bars(self, detector, swing_bars):
        """Test that fewer than 2 * window + 1 bars give no swings"""
        assert detector.detect(swing_bars[:20], window_size=10) == []
        assert detector.detect([], window_size=3) == []

    def test_detects_clear_extremes(self, detector, swing_bars):
        """Test detection of the swing low and swing high"""
        swings = detector.detect(swing_bars, window_size=10)

        assert [(s.index, s.kind) for s in swings] == [(10, SwingKind.LOW), (40, SwingKind.HIGH)]
        assert swings[0].price == swing_bars[10].low
        assert swings[1].price == swing_bars[40].high
        assert swings[0].time == swing_bars[10].time

    def test_strength_is_bounded(self, detector, random_walk_bars):
        """Test that every swing strength lies in [0, 1]"""
        swings = detector.detect(random_walk_bars, window_size=5)

        assert swings
        for swing in swings:
            assert 0.0 <= swing.strength <= 1.0

    def test_swings_ordered_by_index(self, detector, random_walk_bars):
        """Test ordering by bar index"""
        swings = detector.detect(random_walk_bars, window_size=5)
        indices = [s.index for s in swings]

        assert indices == sorted(indices)

    def test_swing_high_dominates_window(self, detector, random_walk_bars):
        """Test that no bar in the window has a strictly greater high"""
        window = 5
        for swing in detector.detect(random_walk_bars, window_size=window):
            neighbours = random_walk_bars[swing.index - window:swing.index + window + 1]
            if swing.kind == SwingKind.HIGH:
                assert all(b.high <= swing.price for b in neighbours)
            else:
                assert all(b.low >= swing.price for b in neighbours)

    def test_equal_highs_are_both_swings(self, detector):
        """Test that ties in the window still count as swing points"""
        bars = []
        for i in range(9):
            high = 110.0 if i in (4, 5) else 100.0
            bars.append(PriceBar(START_TIME + i * HOUR, 99.0, high, 95.0, 99.5, 100.0))

        highs = [s.index for s in detector.detect(bars, window_size=2) if s.kind == SwingKind.HIGH]

        assert 4 in highs
        assert 5 in highs

    def test_flat_series_has_zero_strength(self, detector):
        """Test that flat prices produce swings with no strength"""
        bars = [PriceBar(START_TIME + i * HOUR, 100.0, 101.0, 99.0, 100.0, 50.0) for i in range(7)]
        swings = detector.detect(bars, window_size=2)

        assert swings
        assert all(s.strength == 0.0 for s in swings)


class TestPriceLevelClusterer:
    """Tests for PriceLevelClusterer"""

    def test_empty_input(self, clusterer):
        """Test that no bars give no levels"""
        assert clusterer.cluster([]) == []

    def test_support_from_two_bullish_touches(self, clusterer, level_bars):
        """Test the support level built from the two bullish bounces off 50000"""
        levels = clusterer.cluster(level_bars)

        assert len(levels) == 1
        level = levels[0]
        assert level.kind == LevelKind.SUPPORT
        assert level.touch_count == 2
        assert level.price == pytest.approx(50000, rel=0.002)
        assert all(t.kind == LevelKind.SUPPORT for t in level.touches)

    def test_level_without_enough_touches_is_dropped(self, clusterer, level_bars):
        """Test that a seed touched by a single bar yields no level"""
        bars = level_bars[:31]
        levels = clusterer.build_level(bars, 50000.0)

        assert levels is None

    def test_levels_respect_min_touches(self, clusterer, random_walk_bars):
        """Test that every level has at least the configured touches"""
        for level in clusterer.cluster(random_walk_bars):
            assert level.touch_count >= 2
            assert 0.0 <= level.strength <= 1.0

    def test_seed_prices_come_from_dense_bins(self, clusterer, level_bars):
        """Test that histogram seeds lie inside the observed price range"""
        seeds = clusterer.find_seed_prices(level_bars)

        assert seeds
        assert all(50000 <= s <= 51600 for s in seeds)


class TestLevelManager:
    """Tests for LevelManager"""

    def test_nearby_levels_merge(self):
        """Test that levels 0.2% apart merge into one with all touches"""
        first = PriceLevel(50000.0, (touch(1, 50000.0), touch(5, 50010.0)), 0.2, LevelKind.SUPPORT)
        second = PriceLevel(50100.0, (touch(9, 50100.0), touch(14, 50090.0)), 0.2, LevelKind.SUPPORT)

        merged = LevelManager().cluster_levels([first, second], reference_price=50000.0)

        assert len(merged) == 1
        assert merged[0].touch_count == 4
        assert 50000.0 <= merged[0].price <= 50100.0

    def test_distant_levels_stay_apart(self):
        """Test that levels further apart than the threshold are kept"""
        low = PriceLevel(50000.0, (touch(1, 50000.0), touch(2, 50000.0)), 0.2, LevelKind.SUPPORT)
        high = PriceLevel(51000.0, (touch(3, 51000.0, LevelKind.RESISTANCE),
                                    touch(4, 51000.0, LevelKind.RESISTANCE)), 0.2, LevelKind.RESISTANCE)

        result = LevelManager().cluster_levels([low, high], reference_price=50000.0)

        assert len(result) == 2

    def test_merge_deduplicates_touches(self):
        """Test that shared touches are counted once"""
        shared = touch(3, 50000.0)
        first = PriceLevel(50000.0, (shared, touch(4, 50020.0)), 0.2, LevelKind.SUPPORT)
        second = PriceLevel(50010.0, (shared, touch(8, 50010.0)), 0.2, LevelKind.SUPPORT)

        merged = LevelManager().merge_levels([first, second])

        assert merged.touch_count == 3
        times = [t.time for t in merged.touches]
        assert times == sorted(times)
        assert merged.strength == pytest.approx(0.3)

    def test_merge_majority_kind(self):
        """Test that the dominant touch kind decides the merged kind"""
        touches = tuple(touch(i, 50000.0, LevelKind.RESISTANCE) for i in range(5))
        level = PriceLevel(50000.0, touches + (touch(9, 50000.0),), 0.5, LevelKind.RESISTANCE)

        merged = LevelManager().merge_levels([level])

        assert merged.kind == LevelKind.RESISTANCE

    def test_merge_requires_levels(self):
        """Test that merging nothing is rejected"""
        with pytest.raises(ValueError):
            LevelManager().merge_levels([])


class TestPsychologicalLevels:
    """Tests for round number detection"""

    def test_round_prices_are_near(self):
        """Test that round prices are psychological"""
        assert PsychologicalLevelDetector.is_near_psychological(50000.0)
        assert PsychologicalLevelDetector.roundness(50000.0) > PsychologicalLevelDetector.roundness(50123.0)

    def test_roundness_bounded(self):
        """Test that roundness is within [0, 1]"""
        for price in (0.5, 17.3, 1234.5, 50000.0, 98765.4):
            assert 0.0 <= PsychologicalLevelDetector.roundness(price) <= 1.0

    def test_levels_around_price(self):
        """Test round-number levels near the current price"""
        levels = PsychologicalLevelDetector().detect_levels(50200.0, 2000.0)

        assert levels[0] == {'price': 50000, 'strength': 0.9, 'type': 'ten_thousand'}
        assert [lv['price'] for lv in levels] == [50000, 50000, 50000, 51000]
