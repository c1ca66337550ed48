"""
Fraud Risk Ensemble

Transaction fraud risk scoring for mobile money: an ensemble of gradient
boosted trees, an autoencoder anomaly detector, an LSTM sequence analyzer
and a graph fraud ring detector, fused into a risk score, a risk tier, a
Shapley-value explanation and a recommended action.

Example:
    >>> from fraud_ensemble import EnsembleOrchestrator
    >>>
    >>> engine = EnsembleOrchestrator()
    >>> prediction = engine.predict_fraud(transaction)
    >>> print(prediction.risk_level, prediction.recommended_action)
"""

from fraud_ensemble.config import EngineConfig
from fraud_ensemble.exceptions import (
    FraudEngineError,
    EngineInitializationError,
    RetrainingError
)
from fraud_ensemble.data.schema import (
    Transaction,
    FraudPattern,
    FraudPrediction,
    RiskLevel,
    TransactionType
)
from fraud_ensemble.features.transaction_features import FeatureExtractor, MLFeatures
from fraud_ensemble.engine.orchestrator import EnsembleOrchestrator, ModelBundle

__version__ = "0.1.0"

__all__ = [
    'EngineConfig',
    'FraudEngineError',
    'EngineInitializationError',
    'RetrainingError',
    'Transaction',
    'FraudPattern',
    'FraudPrediction',
    'RiskLevel',
    'TransactionType',
    'FeatureExtractor',
    'MLFeatures',
    'EnsembleOrchestrator',
    'ModelBundle',
]
