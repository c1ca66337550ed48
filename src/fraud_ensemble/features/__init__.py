"""Feature extraction for transaction risk scoring."""

from fraud_ensemble.features.transaction_features import (
    FeatureExtractor,
    MLFeatures,
    FEATURE_NAMES,
    AUTOENCODER_FEATURES,
    features_to_matrix
)

__all__ = [
    'FeatureExtractor',
    'MLFeatures',
    'FEATURE_NAMES',
    'AUTOENCODER_FEATURES',
    'features_to_matrix',
]
