"""
Rule-based Fraud Pattern Detection

Named mobile money fraud patterns, each a conjunction of thresholds over the
extracted features and the sub-model outputs:
- SIM_SWAP_ADVANCED: new device, changed location and high velocity
- SOCIAL_ENGINEERING_NLP: "urgent" description at night with anomalous features
- INVESTMENT_SCAM_LSTM: high-risk merchant and a suspicious sequence
- AGENT_FRAUD_RING: untrusted agent in a suspicious graph neighbourhood
- ACCOUNT_TAKEOVER_MULTIMODAL: repeated PIN failures on an untrusted device
  with a high anomaly score

Example:
    >>> from fraud_ensemble.engine.patterns import ModelSignals, detect_patterns
    >>> signals = ModelSignals(xgboost_score=0.95, anomaly_score=1.0)
    >>> [p.type for p in detect_patterns(transaction, features, signals)]
    ['ACCOUNT_TAKEOVER_MULTIMODAL']
"""

from dataclasses import dataclass
from typing import Callable, List, Optional

from fraud_ensemble.data.schema import FraudPattern, Transaction
from fraud_ensemble.features.transaction_features import MLFeatures
from fraud_ensemble.models.sequence_models import SequencePattern


@dataclass(frozen=True)
class ModelSignals:
    """Sub-model outputs the pattern rules look at."""
    xgboost_score: float
    anomaly_score: float
    lstm_pattern: SequencePattern = SequencePattern.NORMAL
    graph_suspicious: bool = False


def sim_swap(transaction: Transaction, features: MLFeatures, signals: ModelSignals) -> Optional[FraudPattern]:
    if features.new_device and features.location_change > 0.5 and features.velocity_score > 0.7:
        return FraudPattern(
            type='SIM_SWAP_ADVANCED',
            confidence=0.9,
            description='Advanced SIM swap attack detected using ML analysis',
            indicators=(
                'New device with high trust deficit',
                'Rapid location change',
                'Unusual transaction velocity',
                f'XGBoost risk score: {signals.xgboost_score * 100:.1f}%',
            )
        )
    return None


def social_engineering(
    transaction: Transaction,
    features: MLFeatures,
    signals: ModelSignals
) -> Optional[FraudPattern]:
    urgent = 'urgent' in (transaction.description or '').lower()
    if urgent and features.hour < 0.25 and signals.anomaly_score > 0.6:
        return FraudPattern(
            type='SOCIAL_ENGINEERING_NLP',
            confidence=0.8,
            description='Social engineering attack detected using NLP analysis',
            indicators=(
                'Urgent language patterns detected',
                'Off-hours transaction timing',
                'Anomalous transaction characteristics',
                'Behavioral deviation from user profile',
            )
        )
    return None


def investment_scam(
    transaction: Transaction,
    features: MLFeatures,
    signals: ModelSignals
) -> Optional[FraudPattern]:
    if features.merchant_category > 0.7 and signals.lstm_pattern == SequencePattern.SUSPICIOUS:
        return FraudPattern(
            type='INVESTMENT_SCAM_LSTM',
            confidence=0.75,
            description='Investment scam detected using time series analysis',
            indicators=(
                'High-risk merchant category',
                'Suspicious transaction sequence pattern',
                'LSTM model flagged unusual behavior',
                'Pattern consistent with known investment scams',
            )
        )
    return None


def agent_fraud_ring(
    transaction: Transaction,
    features: MLFeatures,
    signals: ModelSignals
) -> Optional[FraudPattern]:
    if features.agent_trust < 0.3 and signals.graph_suspicious:
        return FraudPattern(
            type='AGENT_FRAUD_RING',
            confidence=0.85,
            description='Agent fraud ring detected using graph neural network',
            indicators=(
                'Low agent trust score',
                'Suspicious network connections detected',
                'Graph analysis reveals coordinated activity',
                'Multiple connected suspicious entities',
            )
        )
    return None


def account_takeover(
    transaction: Transaction,
    features: MLFeatures,
    signals: ModelSignals
) -> Optional[FraudPattern]:
    if features.pin_attempts > 0.6 and features.device_trust < 0.3 and signals.anomaly_score > 0.7:
        return FraudPattern(
            type='ACCOUNT_TAKEOVER_MULTIMODAL',
            confidence=0.9,
            description='Account takeover detected using multi-modal AI analysis',
            indicators=(
                'Multiple failed PIN attempts',
                'Untrusted device characteristics',
                'High anomaly score from autoencoder',
                'Behavioral patterns inconsistent with user history',
            )
        )
    return None


PatternDetector = Callable[[Transaction, MLFeatures, ModelSignals], Optional[FraudPattern]]

DETECTORS: List[PatternDetector] = [
    sim_swap,
    social_engineering,
    investment_scam,
    agent_fraud_ring,
    account_takeover,
]

SUPPORTED_PATTERNS: List[str] = [
    'SIM_SWAP_ADVANCED',
    'SOCIAL_ENGINEERING_NLP',
    'INVESTMENT_SCAM_LSTM',
    'AGENT_FRAUD_RING',
    'ACCOUNT_TAKEOVER_MULTIMODAL',
]


def detect_patterns(
    transaction: Transaction,
    features: MLFeatures,
    signals: ModelSignals
) -> List[FraudPattern]:
    """
    Run every detector in a fixed order.

    Args:
        transaction: Transaction being scored
        features: Its extracted features
        signals: Sub-model outputs

    Returns:
        Patterns that fired, in detector order
    """
    patterns = []
    for detector in DETECTORS:
        pattern = detector(transaction, features, signals)
        if pattern is not None:
            patterns.append(pattern)
    return patterns
