"""
Fraud Scoring Example

Demonstrates the fraud risk ensemble end to end:
training on synthetic data, fast and detailed scoring, Shapley
explanations, the individual models, and retraining with new labels.
"""

import sys
from pathlib import Path

import numpy as np

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from fraud_ensemble import EngineConfig, EnsembleOrchestrator, Transaction  # noqa: E402
from fraud_ensemble.data.synthetic import SyntheticDataGenerator  # noqa: E402
from fraud_ensemble.demo import sample_transactions  # noqa: E402
from fraud_ensemble.features.transaction_features import FeatureExtractor  # noqa: E402
from fraud_ensemble.models.sequence_models import LSTMTimeSeriesAnalyzer  # noqa: E402


def example_scoring(engine: EnsembleOrchestrator):
    """Fast (cached) and detailed scoring of the sample transactions."""
    print("\n" + "=" * 80)
    print("EXAMPLE 1: Scoring")
    print("=" * 80)

    for payload in sample_transactions():
        fast = engine.predict_fraud(payload)
        detailed = engine.predict_fraud_detailed(payload)

        print(f"\n{fast.transaction_id}")
        print(f"  Fast path:     {fast.risk_score:.3f} ({fast.risk_level.value})")
        print(f"  Detailed path: {detailed.risk_score:.3f} ({detailed.risk_level.value})")
        print(f"  LSTM pattern:  {detailed.ml_insights.lstm_pattern}")
        print(f"  Graph risk:    {detailed.ml_insights.graph_risk_score:.3f}")
        print(f"  Patterns:      {[p.type for p in fast.detected_patterns] or 'none'}")

        cached = engine.predict_fraud(payload)
        print(f"  Cache hit returns same object: {cached is fast}")


def example_explanation(engine: EnsembleOrchestrator):
    """Shapley attribution of the takeover transaction."""
    print("\n" + "=" * 80)
    print("EXAMPLE 2: Explanation")
    print("=" * 80)

    prediction = engine.predict_fraud(sample_transactions()[1])
    print(prediction.explanation)

    contributions = sorted(
        prediction.ml_insights.feature_importance.items(),
        key=lambda item: abs(item[1]),
        reverse=True
    )
    print("Shapley values:")
    for name, value in contributions[:6]:
        print(f"  {name:22s} {value:+.4f}")


def example_sequence_analysis():
    """LSTM analysis of a user's recent history."""
    print("\n" + "=" * 80)
    print("EXAMPLE 3: Sequence analysis")
    print("=" * 80)

    payload = dict(sample_transactions()[0])
    payload['userProfile'] = dict(payload['userProfile'])
    payload['userProfile']['recentTransactions'] = [
        {'amount': amount, 'timestamp': f'2024-03-0{day}T{hour:02d}:00:00Z',
         'merchantCategory': category, 'location': 'Westlands'}
        for amount, day, hour, category in [
            (50, 1, 9, 'telecom'), (80, 2, 12, 'grocery'), (45000, 3, 3, 'investment'),
            (60, 3, 14, 'transport'), (52000, 4, 2, 'lottery'),
        ]
    ]
    transaction = Transaction.from_dict(payload)

    history = FeatureExtractor().transaction_history(transaction)
    analyzer = LSTMTimeSeriesAnalyzer(random_state=42)
    result = analyzer.analyze_transaction_sequence(history)

    print(f"History length: {len(history)}")
    print(f"Anomaly score: {result.anomaly_score:.3f}")
    print(f"Pattern: {result.pattern.value}")


def example_retraining(engine: EnsembleOrchestrator):
    """Retrain with freshly labelled samples."""
    print("\n" + "=" * 80)
    print("EXAMPLE 4: Retraining")
    print("=" * 80)

    before = engine.get_model_metrics()
    features, labels = SyntheticDataGenerator(random_state=7).generate(n_samples=200, fraud_rate=0.3)
    after = engine.retrain_model(features, labels)

    print(f"Training size: {before['training_data_size']} -> {after['training_data_size']}")
    print(f"Accuracy:      {before['accuracy']:.3f} -> {after['accuracy']:.3f}")
    print(f"Cache entries after retrain: {after['cache_size']}")

    top = sorted(after['feature_importance'].items(), key=lambda item: item[1], reverse=True)[:5]
    print("Top features by split gain:")
    for name, gain in top:
        print(f"  {name:22s} {gain:.3f}")


def main():
    np.set_printoptions(precision=3, suppress=True)

    config_path = Path(__file__).parent.parent / 'config' / 'engine_config.yaml'
    engine = EnsembleOrchestrator(EngineConfig(config_path))
    engine.initialize()

    example_scoring(engine)
    example_explanation(engine)
    example_sequence_analysis()
    example_retraining(engine)

    print("\n" + "=" * 80)
    print("All examples completed")
    print("=" * 80)


if __name__ == '__main__':
    main()
