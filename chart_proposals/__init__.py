"""
Chart Proposals Package

Technical-analysis core that proposes chart annotations and rates how
likely drawn lines are to hold.

Key Features:
- Swing point detection and histogram-seeded price level clustering
- Trendline, support/resistance, Fibonacci and chart pattern proposals
- Bounded confidence scoring with market condition and higher-timeframe context
- 23-feature line description with a neural scorer and rule-based fallback
- Staged streaming analysis with progress updates and instrument adjustments
"""

from typing import Any, Dict
import logging

__version__ = "1.0.0"
__author__ = "Chart Proposals Team"
__license__ = "MIT"

logging.getLogger(__name__).addHandler(logging.NullHandler())

from .config.analysis_config import ChartAnalysisConfig, get_config
from .preprocessing.data_processor import PriceBar, PriceDataProcessor
from .support_resistance.algorithms import SwingPointDetector, PriceLevelClusterer
from .support_resistance.level_manager import LevelManager, PriceLevel
from .proposals import (
    AnalysisType,
    GeneratorParams,
    Proposal,
    ProposalEngine,
    ProposalGroup
)
from .ml import (
    DetectedLine,
    FeatureExtractor,
    LineQualityPredictor,
    StreamingAnalysisPipeline
)
from .utils.helpers import SUPPORTED_TIMEFRAMES, validate_timeframe
from .utils.logger import get_logger

__all__ = [
    # Data
    "PriceBar",
    "PriceDataProcessor",

    # Detection
    "SwingPointDetector",
    "PriceLevelClusterer",
    "LevelManager",
    "PriceLevel",

    # Proposals
    "AnalysisType",
    "GeneratorParams",
    "Proposal",
    "ProposalEngine",
    "ProposalGroup",

    # Line quality
    "DetectedLine",
    "FeatureExtractor",
    "LineQualityPredictor",
    "StreamingAnalysisPipeline",

    # Configuration and utilities
    "ChartAnalysisConfig",
    "get_config",
    "get_logger",
    "validate_timeframe",
    "get_package_info",

    "__version__",
    "__author__",
    "__license__"
]


def get_package_info() -> Dict[str, Any]:
    """
    Package information

    Returns:
        Dict with version, author, license and supported timeframes
    """
    return {
        "name": "chart-proposals",
        "version": __version__,
        "author": __author__,
        "license": __license__,
        "description": "Chart annotation proposals and line quality prediction",
        "supported_timeframes": len(SUPPORTED_TIMEFRAMES)
    }
