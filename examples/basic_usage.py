"""
Basic usage example for the chart proposal engine.

This example demonstrates the fundamental workflow:
1. Data preparation
2. Proposal generation
3. Line quality prediction with streamed progress
4. Configuration and error handling
"""

import asyncio
from datetime import datetime

import numpy as np
import pandas as pd

from chart_proposals.config import ChartAnalysisConfig, DetectionConfig, PredictorConfig, setup_logging
from chart_proposals.ml import DetectedLine, LineQualityPredictor, StreamingAnalysisPipeline
from chart_proposals.preprocessing import PriceDataProcessor
from chart_proposals.proposals import AnalysisType, GeneratorParams, ProposalEngine, ProposalType


def generate_sample_data():
    """Generate sample hourly OHLCV data for demonstration"""
    print("📊 Generating sample OHLCV data...")

    timestamps = pd.date_range(start='2024-01-01', periods=500, freq='h', tz='UTC')

    rng = np.random.default_rng(42)
    closes = 50000 * np.exp(np.cumsum(rng.normal(0, 0.004, len(timestamps))))

    data = []
    previous = closes[0]
    for timestamp, close in zip(timestamps, closes):
        wick = abs(rng.normal(0, 0.002)) * close
        data.append({
            'timestamp': timestamp,
            'open': previous,
            'high': max(previous, close) + wick,
            'low': min(previous, close) - wick,
            'close': close,
            'volume': rng.uniform(100, 1000)
        })
        previous = close

    df = pd.DataFrame(data)
    print(f"✅ Generated {len(df)} bars from {df['timestamp'].min()} to {df['timestamp'].max()}")

    return df


def basic_proposal_example(config):
    """Generate proposals and score the best line"""
    print("\n📐 Basic Proposal Example")
    print("=" * 50)

    # 1. Prepare bars
    sample_data = generate_sample_data()
    processor = PriceDataProcessor(symbol="btc/usdt", interval="1h")
    bars = processor.process(sample_data)
    print(f"✅ Bars processed for {processor.symbol}: {len(bars)}")

    # 2. Generate proposals
    print("\n🔍 Generating proposals...")
    engine = ProposalEngine(config)
    params = GeneratorParams(symbol=processor.symbol, interval=processor.interval, max_proposals=8)

    try:
        group = engine.generate_proposals(bars, AnalysisType.ALL, params)
    finally:
        engine.cleanup()

    condition = group.market_condition
    print(f"Market condition: {condition.type.value} (strength {condition.strength:.2f})")
    print(f"Proposals: {len(group.proposals)}")
    for proposal in group.proposals:
        print(f"  - {proposal.type.value:<10} {proposal.confidence:.2f} {proposal.priority.value:<6} {proposal.reason}")

    # 3. Predict the quality of the first line
    lines = [p for p in group.proposals if p.type in (ProposalType.HORIZONTAL, ProposalType.TRENDLINE)]
    if not lines:
        print("\n⚠️ No line proposals to analyse")
        return group

    line = DetectedLine.from_proposal(lines[0], bars)
    print(f"\n🧠 Analysing line {line.id} with {len(line.touch_points)} touches...")

    pipeline = StreamingAnalysisPipeline(predictor=LineQualityPredictor(config.predictor), config=config)
    stream = pipeline.analyze_line_with_progress(line, bars, processor.symbol)
    while True:
        try:
            update = next(stream)
        except StopIteration as stop:
            prediction = stop.value
            break
        print(f"  [{update.progress:>3}%] {update.stage.value}: {update.current_step}")

    print("\n📊 Prediction Summary:")
    print("-" * 30)
    print(f"Scorer: {prediction.scorer}")
    print(f"Success probability: {prediction.success_probability:.2%}")
    print(f"Expected bounces: {prediction.expected_bounces}")
    print(f"Risk score: {prediction.risk_score:.2f}")
    for reason in prediction.reasoning[:3]:
        print(f"  {reason.impact:<8} {reason.factor}: {reason.description}")

    return group


async def async_proposal_example(config):
    """Run the generators concurrently"""
    print("\n⚡ Async Proposal Example")
    print("=" * 30)

    bars = PriceDataProcessor(symbol="ETHUSDT", interval="1h").process(generate_sample_data())
    engine = ProposalEngine(config)
    try:
        group = await engine.generate_proposals_async(
            bars,
            AnalysisType.ALL,
            GeneratorParams(symbol="ETHUSDT", interval="1h", max_proposals=5)
        )
    finally:
        engine.cleanup()

    print(f"✅ {len(group.proposals)} proposals: {[p.type.value for p in group.proposals]}")
    return group


def configuration_example():
    """Example of custom configuration usage"""
    print("\n⚙️ Configuration Example")
    print("=" * 30)

    config = ChartAnalysisConfig(
        detection=DetectionConfig(peak_window_size=7, touch_tolerance=0.003),
        predictor=PredictorConfig(use_neural_scorer=False)
    )

    print("Custom configuration created:")
    print(f"- Peak window size: {config.detection.peak_window_size}")
    print(f"- Touch tolerance: {config.detection.touch_tolerance}")
    print(f"- Minimum confidence: {config.scoring.min_confidence}")
    print(f"- Neural scorer: {config.predictor.use_neural_scorer}")

    return config


def error_handling_example():
    """Example of error handling"""
    print("\n⚠️ Error Handling Example")
    print("=" * 30)

    from chart_proposals.utils.exceptions import InsufficientDataException, InvalidDataException

    print("1. Testing an unsupported interval...")
    try:
        PriceDataProcessor(symbol="BTCUSDT", interval="7h")
    except InvalidDataException as e:
        print(f"✅ Caught expected error: {e}")

    print("\n2. Testing bars with broken OHLC relations...")
    try:
        invalid_data = pd.DataFrame({
            'time': [1704067200], 'open': [100.0], 'high': [90.0], 'low': [80.0], 'close': [95.0], 'volume': [1.0]
        })
        PriceDataProcessor(symbol="BTCUSDT").process(invalid_data)
    except InvalidDataException as e:
        print(f"✅ Caught expected error: {e}")

    print("\n3. Testing strict mode with too few bars...")
    engine = ProposalEngine(strict=True)
    try:
        engine.generate_proposals(generate_sample_data().head(10))
    except InsufficientDataException as e:
        print(f"✅ Caught expected error: {e}")
    finally:
        engine.cleanup()

    print("\n✅ Error handling examples completed")


if __name__ == "__main__":
    """Main execution"""
    print("📐 Chart Proposals - Basic Usage Examples")
    print("=" * 60)
    print(f"Execution started at: {datetime.now()}")

    try:
        custom_config = configuration_example()
        setup_logging(custom_config)

        basic_proposal_example(custom_config)
        asyncio.run(async_proposal_example(custom_config))
        error_handling_example()

        print("\n" + "=" * 60)
        print("🎉 All examples completed successfully!")
        print(f"Execution finished at: {datetime.now()}")

    except Exception as e:
        print(f"\n❌ Example failed with error: {e}")
        import traceback
        traceback.print_exc()
