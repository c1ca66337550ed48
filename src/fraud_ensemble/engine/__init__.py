"""
Scoring engine: prediction cache, fraud pattern rules and the ensemble
orchestrator.
"""

from fraud_ensemble.engine.cache import PredictionCache, make_cache_key
from fraud_ensemble.engine.patterns import (
    ModelSignals,
    SUPPORTED_PATTERNS,
    detect_patterns
)
from fraud_ensemble.engine.orchestrator import (
    EnsembleOrchestrator,
    ModelBundle,
    determine_risk_level
)

__all__ = [
    'PredictionCache',
    'make_cache_key',
    'ModelSignals',
    'SUPPORTED_PATTERNS',
    'detect_patterns',
    'EnsembleOrchestrator',
    'ModelBundle',
    'determine_risk_level',
]
