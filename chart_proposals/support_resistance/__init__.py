"""
Swing Point and Support/Resistance Level Detection

Building blocks shared by the proposal generators.

## Key Features

### Swing points
- Strict-dominance extrema over a symmetric bar window
- Strength from the relative advantage over neighbours, scaled by volume

### Price levels
- Histogram seeding from the densest high/low price bins
- Touch classification (support / resistance / both) from the bar's close
- Referentially transparent merge of nearby levels

### Price psychology
- Round-number levels around the current price
- Roundness score and proximity to major round numbers

## Usage Example

```python
from chart_proposals.support_resistance import SwingPointDetector, PriceLevelClusterer

swings = SwingPointDetector().detect(bars, window_size=10)
levels = sorted(PriceLevelClusterer().cluster(bars), key=lambda lv: lv.strength, reverse=True)
```
"""

from .algorithms import (
    SwingKind,
    SwingPoint,
    SwingPointDetector,
    PriceLevelClusterer,
    PsychologicalLevelDetector
)
from .level_manager import (
    LevelManager,
    LevelKind,
    LevelTouch,
    PriceLevel,
    derive_level_kind
)

__all__ = [
    # Swing points
    "SwingKind",
    "SwingPoint",
    "SwingPointDetector",

    # Levels
    "PriceLevelClusterer",
    "LevelManager",
    "LevelKind",
    "LevelTouch",
    "PriceLevel",
    "derive_level_kind",

    # Price psychology
    "PsychologicalLevelDetector"
]
