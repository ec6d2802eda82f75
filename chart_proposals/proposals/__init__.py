"""
Chart Proposal Generation

Scored chart annotations (trendlines, support/resistance levels, Fibonacci
retracements and chart patterns) built from a price bar series.

## Key Features

### Generators
- ``TrendlineGenerator``: swing-anchored lines refitted by least squares
- ``SupportResistanceGenerator``: clustered horizontal levels
- ``FibonacciGenerator``: retracements of recent swing pairs
- ``PatternGenerator``: double tops/bottoms, head and shoulders, triangles, channels

### Shared machinery
- ``ConfidenceScorer``: bounded confidence rules and the weighted blend
- ``MarketAnalyzer``: trending/ranging/volatile classification and higher-timeframe alignment
- ``validate_drawing_data``: drawing payload checks with default styles

### Orchestration
- ``ProposalEngine``: runs the generators of an ``AnalysisType``, merges,
  sorts and cuts their proposals into a ``ProposalGroup``

## Usage Example

```python
from chart_proposals.proposals import ProposalEngine, AnalysisType, GeneratorParams

engine = ProposalEngine()
group = engine.generate_proposals(
    bars,
    AnalysisType.ALL,
    GeneratorParams(symbol="BTCUSDT", interval="1h", max_proposals=5)
)
for proposal in group.proposals:
    print(proposal.type.value, proposal.confidence, proposal.reason)
```
"""

from .base import (
    ProposalType,
    Priority,
    GeneratorKind,
    AnalysisType,
    MarketConditionType,
    MarketCondition,
    MultiTimeframeAnalysis,
    ChartPoint,
    DrawingStyle,
    Proposal,
    ProposalGroup,
    GeneratorParams,
    ProposalGenerator
)
from .confidence import (
    ConfidenceScorer,
    ConfidenceFactors,
    VolumeAnalysis,
    TrendlineScore,
    analyze_volume,
    count_line_touches,
    trend_clarity
)
from .market_analyzer import MarketAnalyzer, CandlePattern, detect_candle_patterns
from .validator import validate_drawing_data, DEFAULT_FIBONACCI_LEVELS
from .styles import PALETTE, StylePalette, default_style
from .trendline import TrendlineGenerator
from .levels import SupportResistanceGenerator
from .fibonacci import FibonacciGenerator
from .patterns import PatternGenerator, DetectedPattern
from .engine import ProposalEngine, build_generator_registry

__all__ = [
    # Data model
    "ProposalType",
    "Priority",
    "GeneratorKind",
    "AnalysisType",
    "MarketConditionType",
    "MarketCondition",
    "MultiTimeframeAnalysis",
    "ChartPoint",
    "DrawingStyle",
    "Proposal",
    "ProposalGroup",
    "GeneratorParams",
    "ProposalGenerator",

    # Scoring
    "ConfidenceScorer",
    "ConfidenceFactors",
    "VolumeAnalysis",
    "TrendlineScore",
    "analyze_volume",
    "count_line_touches",
    "trend_clarity",

    # Market analysis
    "MarketAnalyzer",
    "CandlePattern",
    "detect_candle_patterns",

    # Drawing
    "validate_drawing_data",
    "DEFAULT_FIBONACCI_LEVELS",
    "PALETTE",
    "StylePalette",
    "default_style",

    # Generators
    "TrendlineGenerator",
    "SupportResistanceGenerator",
    "FibonacciGenerator",
    "PatternGenerator",
    "DetectedPattern",

    # Orchestration
    "ProposalEngine",
    "build_generator_registry"
]
