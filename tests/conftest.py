"""
Shared fixtures for the chart proposal test suite.
"""

from typing import List, Sequence

import numpy as np
import pytest

from chart_proposals.config.analysis_config import ChartAnalysisConfig, PredictorConfig
from chart_proposals.ml.feature_extractor import LineFeatures
from chart_proposals.ml.line_predictor import Scorer, ScorerOutput
from chart_proposals.preprocessing.data_processor import PriceBar

# Monday 2023-11-13 00:00 UTC
START_TIME = 1699833600
HOUR = 3600


def bars_from_closes(
    closes: Sequence[float],
    start_time: int = START_TIME,
    step: int = HOUR,
    volume: float = 1000.0,
    spread: float = 10.0
) -> List[PriceBar]:
    """Bars opening halfway between the previous and current close"""
    bars = []
    previous = closes[0]
    for i, close in enumerate(closes):
        open_price = (previous + close) / 2
        bars.append(PriceBar(
            time=start_time + i * step,
            open=float(open_price),
            high=float(max(open_price, close) + spread),
            low=float(min(open_price, close) - spread),
            close=float(close),
            volume=volume,
        ))
        previous = close
    return bars


@pytest.fixture
def random_walk_bars():
    """200 hourly bars of a seeded random walk around 50000"""
    rng = np.random.default_rng(42)
    closes = 50000 + np.cumsum(rng.normal(0, 120, 200))
    bars = []
    previous = closes[0]
    for i, close in enumerate(closes):
        open_price = previous
        wick = abs(rng.normal(0, 60))
        bars.append(PriceBar(
            time=START_TIME + i * HOUR,
            open=float(open_price),
            high=float(max(open_price, close) + wick),
            low=float(min(open_price, close) - wick),
            close=float(close),
            volume=float(rng.uniform(500, 1500)),
        ))
        previous = close
    return bars


@pytest.fixture
def swing_bars():
    """
    Clear low at bar 10, clear high at bar 40, then a half retracement

    Prices fall to 50000, rise to 52000 and drift back to 51000 over 100 bars.
    """
    closes = (
        list(np.linspace(50500, 50000, 11))
        + list(np.linspace(50000, 52000, 31))[1:]
        + list(np.linspace(52000, 51000, 60))[1:]
    )
    return bars_from_closes(closes)


@pytest.fixture
def level_bars():
    """
    Two bullish bars bouncing off 50000 between doji clusters

    30 doji bars at 50200 (range 50000-50300), two bullish bars with lows
    at 50000, then 30 doji bars at 51500 (range 51400-51600).
    """
    bars = []
    t = START_TIME
    for _ in range(30):
        bars.append(PriceBar(t, 50200.0, 50300.0, 50000.0, 50200.0, 100.0))
        t += HOUR
    for _ in range(2):
        bars.append(PriceBar(t, 50100.0, 50350.0, 50000.0, 50300.0, 100.0))
        t += HOUR
    for _ in range(30):
        bars.append(PriceBar(t, 51500.0, 51600.0, 51400.0, 51500.0, 100.0))
        t += HOUR
    return bars


@pytest.fixture
def test_config():
    """Default configuration built without reading the environment file"""
    return ChartAnalysisConfig()


@pytest.fixture
def rules_only_config():
    """Predictor configuration that skips the neural bootstrap"""
    return PredictorConfig(use_neural_scorer=False)


def make_features(**overrides) -> LineFeatures:
    """Neutral line features with selected overrides"""
    values = dict(
        touch_count=3,
        r_squared=0.5,
        confidence=0.6,
        wick_touch_ratio=0.5,
        body_touch_ratio=0.3,
        exact_touch_ratio=0.2,
        volume_average=1000.0,
        volume_max=1500.0,
        volume_strength=1.0,
        age_in_candles=100,
        recent_touch_count=1,
        time_since_last_touch=20,
        market_condition="ranging",
        trend_strength=0.0,
        volatility=0.2,
        time_of_day=12,
        day_of_week=3,
        timeframe_confluence=0.5,
        higher_timeframe_alignment=0.5,
        near_pattern=False,
        distance_from_price=0.01,
        price_roundness=0.0,
        near_psychological=False,
    )
    values.update(overrides)
    return LineFeatures(**values)


@pytest.fixture
def feature_factory():
    return make_features


class FixedScorer(Scorer):
    """Scorer answering the same estimate for every line"""

    name = "fixed"

    def __init__(self, probability: float = 0.6):
        self.probability = probability
        self.calls = 0

    def predict(self, features, vector):
        self.calls += 1
        return ScorerOutput(
            success_probability=self.probability,
            expected_bounces=2,
            confidence_interval=(self.probability - 0.1, self.probability + 0.1),
        )


class FailingScorer(Scorer):
    """Scorer that always raises the given exception"""

    name = "failing"

    def __init__(self, exception: Exception):
        self.exception = exception

    def predict(self, features, vector):
        raise self.exception


@pytest.fixture
def fixed_scorer():
    return FixedScorer()
