"""
Swing Point and Price Level Detection Algorithms

Local extrema with volume-weighted strength, histogram-seeded price
levels with touch classification, and round-number price psychology.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple, Any

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from ..config.analysis_config import DetectionConfig, get_config
from ..preprocessing.data_processor import PriceBar, bars_to_arrays
from ..utils.logger import get_logger
from .level_manager import LevelKind, LevelTouch, PriceLevel, LevelManager, derive_level_kind


class SwingKind(str, Enum):
    """Kind of local extremum"""
    HIGH = "high"
    LOW = "low"


@dataclass(frozen=True)
class SwingPoint:
    """Local extremum of a bar series"""
    index: int
    time: int
    price: float
    kind: SwingKind
    strength: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'index': self.index,
            'time': self.time,
            'price': self.price,
            'kind': self.kind.value,
            'strength': self.strength,
        }


class SwingPointDetector:
    """
    Detect swing highs and lows.

    Bar ``i`` is a swing high when no bar within ``window_size`` bars on
    either side has a strictly greater high (lows symmetric). Strength sums
    the relative advantage over every neighbour and scales it by the bar's
    volume relative to the window average, clamped to [0, 1].
    """

    def __init__(self, config: Optional[DetectionConfig] = None):
        self.config = config or get_config().detection
        self.logger = get_logger("SwingPointDetector")

    def detect(
        self,
        bars: Sequence[PriceBar],
        window_size: Optional[int] = None
    ) -> List[SwingPoint]:
        """Swing points ordered by bar index; empty when there are too few bars"""
        window = window_size or self.config.peak_window_size
        span = 2 * window + 1

        if len(bars) < span:
            return []

        arrays = bars_to_arrays(bars)
        volume_windows = sliding_window_view(arrays.volume, span)
        center_volume = arrays.volume[window:len(bars) - window]
        window_avg = volume_windows.mean(axis=1)
        volume_ratio = np.divide(
            center_volume, window_avg,
            out=np.ones_like(center_volume), where=window_avg > 0
        )

        highs = self._find(arrays.high, window, volume_ratio, SwingKind.HIGH)
        lows = self._find(arrays.low, window, volume_ratio, SwingKind.LOW)

        points = [
            SwingPoint(
                index=int(i),
                time=int(arrays.time[i]),
                price=float(price),
                kind=kind,
                strength=float(strength),
            )
            for i, price, kind, strength in highs + lows
        ]
        points.sort(key=lambda p: (p.index, p.kind != SwingKind.HIGH))

        self.logger.debug(
            "Swing points detected",
            bars=len(bars),
            window=window,
            highs=len(highs),
            lows=len(lows)
        )
        return points

    def _find(
        self,
        prices: np.ndarray,
        window: int,
        volume_ratio: np.ndarray,
        kind: SwingKind
    ) -> List[Tuple[int, float, SwingKind, float]]:
        windows = sliding_window_view(prices, 2 * window + 1)
        center = prices[window:len(prices) - window]

        if kind == SwingKind.HIGH:
            is_swing = center >= windows.max(axis=1)
            advantage = center[:, None] - windows
        else:
            is_swing = center <= windows.min(axis=1)
            advantage = windows - center[:, None]

        safe_center = np.where(center > 0, center, 1.0)
        relative = np.clip(advantage, 0, None) / safe_center[:, None]
        strength = np.clip(relative.sum(axis=1) * volume_ratio, 0.0, 1.0)
        strength = np.where(center > 0, strength, 0.0)

        return [
            (k + window, center[k], kind, strength[k])
            for k in np.flatnonzero(is_swing)
        ]


class PriceLevelClusterer:
    """
    Build support/resistance levels from histogram peaks.

    All highs and lows go into a fixed-bin histogram; non-empty bins at or
    above the seed percentile become candidate prices. Each candidate
    collects the bars that touch it within the tolerance band, candidates
    with too few touches are discarded and the rest are merged by
    ``LevelManager`` around the latest close.
    """

    def __init__(self, config: Optional[DetectionConfig] = None):
        self.config = config or get_config().detection
        self.level_manager = LevelManager(self.config)
        self.logger = get_logger("PriceLevelClusterer")

    def cluster(self, bars: Sequence[PriceBar]) -> List[PriceLevel]:
        """Merged levels ordered by price; callers sort by strength"""
        if len(bars) == 0:
            return []

        seeds = self.find_seed_prices(bars)
        candidates = [
            level for level in (self.build_level(bars, seed) for seed in seeds)
            if level is not None
        ]

        if not candidates:
            self.logger.debug("No price level reached the touch minimum", seeds=len(seeds))
            return []

        merged = self.level_manager.cluster_levels(candidates, bars[-1].close)

        self.logger.debug(
            "Price levels clustered",
            seeds=len(seeds),
            candidates=len(candidates),
            levels=len(merged)
        )
        return merged

    def find_seed_prices(self, bars: Sequence[PriceBar]) -> List[float]:
        """Centers of the densest non-empty histogram bins"""
        arrays = bars_to_arrays(bars)
        values = np.concatenate([arrays.high, arrays.low])
        low, high = float(values.min()), float(values.max())

        if high <= low:
            return [low]

        counts, edges = np.histogram(values, bins=self.config.histogram_bins, range=(low, high))
        centers = (edges[:-1] + edges[1:]) / 2
        occupied = counts > 0

        threshold = np.percentile(counts[occupied], self.config.seed_percentile)
        seeds = centers[occupied & (counts >= threshold)]
        return [float(s) for s in seeds]

    def build_level(self, bars: Sequence[PriceBar], level_price: float) -> Optional[PriceLevel]:
        """
        Level for one candidate price, or None below the touch minimum

        A bar touches as support when its low is inside the band and it
        closes above its open, as resistance when its high is inside the
        band and it closes below its open. A qualifying bar whose low and
        high both sit inside the band counts as ``both``.
        """
        tolerance = level_price * self.config.touch_tolerance
        touches: List[LevelTouch] = []

        for bar in bars:
            low_near = abs(bar.low - level_price) <= tolerance
            high_near = abs(bar.high - level_price) <= tolerance
            bullish = bar.close > bar.open
            bearish = bar.close < bar.open

            if low_near and high_near and (bullish or bearish):
                touches.append(LevelTouch(bar.time, bar.close, bar.volume, LevelKind.BOTH))
            elif low_near and bullish:
                touches.append(LevelTouch(bar.time, bar.low, bar.volume, LevelKind.SUPPORT))
            elif high_near and bearish:
                touches.append(LevelTouch(bar.time, bar.high, bar.volume, LevelKind.RESISTANCE))

        if len(touches) < self.config.min_touches:
            return None

        return PriceLevel(
            price=level_price,
            touches=tuple(touches),
            strength=min(1.0, len(touches) / len(bars)),
            kind=derive_level_kind(touches),
        )


class PsychologicalLevelDetector:
    """
    Round-number price levels and price psychology scores
    """

    MAJOR_ROUND_NUMBERS = (1000, 5000, 10000, 50000, 100000)

    def __init__(self):
        self.logger = get_logger("PsychologicalLevelDetector")

    def detect_levels(self, current_price: float, price_range: float) -> List[Dict[str, Any]]:
        """Round-number levels within ``price_range`` around the current price"""
        levels = []

        search_min = current_price - price_range / 2
        search_max = current_price + price_range / 2

        for interval, strength, level_type in self._get_intervals(current_price):
            start = int(search_min / interval) * interval
            end = int(search_max / interval) * interval + interval

            current = start
            while current <= end:
                if search_min <= current <= search_max:
                    levels.append({
                        'price': current,
                        'strength': strength,
                        'type': level_type
                    })
                current += interval

        levels.sort(key=lambda x: (abs(x['price'] - current_price), -x['strength']))
        self.logger.debug("Round-number levels found", price=current_price, count=len(levels))
        return levels[:20]

    @staticmethod
    def roundness(price: float) -> float:
        """1.0 for thousands, 0.8 hundreds, 0.6 tens, 0.4 one decimal, else 0.2"""
        if price % 1000 == 0:
            return 1.0
        if price % 100 == 0:
            return 0.8
        if price % 10 == 0:
            return 0.6
        if abs(round(price, 1) - price) < 1e-9:
            return 0.4
        return 0.2

    @classmethod
    def is_near_psychological(cls, price: float, tolerance: float = 0.01) -> bool:
        """Within ``tolerance`` (relative) of a multiple of a major round number"""
        if price <= 0:
            return False
        for level in cls.MAJOR_ROUND_NUMBERS:
            nearest = round(price / level) * level
            if nearest > 0 and abs(price - nearest) / price <= tolerance:
                return True
        return False

    def _get_intervals(self, price: float) -> List[Tuple[float, float, str]]:
        """Round-number steps appropriate for the price magnitude"""

        if price < 1:
            return [
                (0.01, 0.5, 'cent'),
                (0.10, 0.7, 'dime'),
                (0.50, 0.85, 'half'),
                (1.00, 0.9, 'dollar')
            ]
        elif price < 100:
            return [
                (1, 0.5, 'whole'),
                (10, 0.8, 'ten'),
                (50, 0.9, 'half_hundred')
            ]
        elif price < 10000:
            return [
                (100, 0.7, 'hundred'),
                (500, 0.8, 'half_thousand'),
                (1000, 0.9, 'thousand')
            ]
        else:
            return [
                (1000, 0.8, 'thousand'),
                (5000, 0.85, 'five_thousand'),
                (10000, 0.9, 'ten_thousand')
            ]
