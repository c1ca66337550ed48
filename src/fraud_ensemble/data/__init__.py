"""
Data records and synthetic training data.

Synthetic data generation lives in ``fraud_ensemble.data.synthetic``.
"""

from fraud_ensemble.data.schema import (
    AgentInfo,
    DeviceFingerprint,
    RecentTransaction,
    UserProfile,
    Transaction,
    TransactionType,
    RiskLevel,
    FraudPattern,
    ModelInsights,
    FraudPrediction,
    parse_timestamp
)

__all__ = [
    'AgentInfo',
    'DeviceFingerprint',
    'RecentTransaction',
    'UserProfile',
    'Transaction',
    'TransactionType',
    'RiskLevel',
    'FraudPattern',
    'ModelInsights',
    'FraudPrediction',
    'parse_timestamp',
]
