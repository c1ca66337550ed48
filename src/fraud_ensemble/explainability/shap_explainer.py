"""
Monte-Carlo Shapley Attribution

Per-feature attribution of the boosted classifier's fraud probability
relative to a baseline record (the mean of the training features).

For every feature, random coalitions are drawn by starting from the baseline
and switching each other feature to the transaction's value with probability
0.5. The feature's value is the mean difference between scoring the
coalition with the real value and with the baseline value of that feature.

This is a Banzhaf-style estimate. The values sum to the prediction minus
the baseline prediction when the record differs from the baseline in at
most two features (in expectation for two) or the model reads a single
feature; otherwise their sum is not bounded by that difference.

Example:
    >>> from fraud_ensemble.explainability.shap_explainer import SHAPExplainer
    >>> explainer = SHAPExplainer.from_training_data(model, X_train, random_state=42)
    >>> result = explainer.explain(features)
    >>> print(result.explanation)
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd
from loguru import logger

from fraud_ensemble.features.transaction_features import (
    FEATURE_NAMES,
    MLFeatures,
    features_to_matrix,
)
from fraud_ensemble.models.tree_models import GradientBoostingClassifier

FEATURE_DESCRIPTIONS: Dict[str, str] = {
    'amount': 'Transaction amount',
    'hour': 'Transaction timing',
    'day_of_week': 'Day of week',
    'velocity_score': 'Transaction velocity',
    'frequency_score': 'Transaction frequency',
    'device_trust': 'Device trust level',
    'new_device': 'New device usage',
    'location_change': 'Location change',
    'agent_trust': 'Agent reliability',
    'network_trust': 'Network security',
    'pin_attempts': 'PIN attempt pattern',
    'user_risk_profile': 'User risk profile',
    'transaction_pattern': 'Transaction timing pattern',
    'merchant_category': 'Merchant category risk',
}


@dataclass(frozen=True)
class Explanation:
    """Attribution of one prediction."""
    shap_values: Dict[str, float]
    prediction: float
    explanation: str
    baseline_prediction: float
    top_features: List[Tuple[str, float]] = field(default_factory=list)

    def to_dict(self) -> Dict:
        """Convert to dictionary."""
        return {
            'shap_values': dict(self.shap_values),
            'prediction': self.prediction,
            'explanation': self.explanation,
            'baseline_prediction': self.baseline_prediction,
            'top_features': [list(item) for item in self.top_features],
        }


def risk_label(probability: float) -> str:
    if probability > 0.7:
        return 'HIGH'
    if probability > 0.4:
        return 'MEDIUM'
    return 'LOW'


class SHAPExplainer:
    """
    Shapley-value approximator over a GradientBoostingClassifier.

    Coalition sampling is seeded per call, so the same record always gets the
    same explanation and concurrent callers do not share generator state.

    Example:
        >>> explainer = SHAPExplainer(model, baseline, n_samples=100, random_state=42)
        >>> explainer.explain(features).shap_values['device_trust']
    """

    def __init__(
        self,
        model: GradientBoostingClassifier,
        baseline: MLFeatures,
        n_samples: int = 100,
        top_k: int = 3,
        random_state: Optional[int] = None
    ):
        """
        Initialize explainer.

        Args:
            model: Fitted classifier to explain
            baseline: Reference feature record
            n_samples: Coalitions drawn per feature
            top_k: Number of features narrated in the explanation text
            random_state: Random seed for coalition sampling
        """
        if not model.is_fitted:
            raise ValueError("Model not fitted. Call fit() first.")

        self.model = model
        self.baseline = baseline
        self.n_samples = n_samples
        self.top_k = top_k
        self.random_state = random_state
        self.baseline_prediction = model.predict(baseline)

    @classmethod
    def from_training_data(
        cls,
        model: GradientBoostingClassifier,
        X: Union[pd.DataFrame, np.ndarray],
        **kwargs
    ) -> 'SHAPExplainer':
        """Build an explainer whose baseline is the mean training record."""
        values = X.to_numpy(dtype=float) if isinstance(X, pd.DataFrame) else np.asarray(X, dtype=float)
        if len(values) == 0:
            raise ValueError("Cannot compute a baseline from an empty training set")
        return cls(model, MLFeatures.from_array(values.mean(axis=0)), **kwargs)

    def explain(self, features: MLFeatures) -> Explanation:
        """
        Attribute the model's prediction for a feature record.

        Args:
            features: Record to explain

        Returns:
            Explanation
        """
        rng = np.random.default_rng(self.random_state)
        shap_values = {
            name: self._shapley_value(features, name, rng) for name in FEATURE_NAMES
        }
        prediction = self.model.predict(features)

        ranked = sorted(shap_values.items(), key=lambda item: abs(item[1]), reverse=True)
        top_features = ranked[:self.top_k]

        return Explanation(
            shap_values=shap_values,
            prediction=prediction,
            explanation=self._narrate(top_features, prediction),
            baseline_prediction=self.baseline_prediction,
            top_features=top_features
        )

    def _shapley_value(self, features: MLFeatures, target: str, rng: np.random.Generator) -> float:
        if self.n_samples <= 0:
            return 0.0

        others = [name for name in FEATURE_NAMES if name != target]
        draws = rng.random((self.n_samples, len(others))) > 0.5

        with_feature = []
        without_feature = []
        for row in draws:
            coalition = self.baseline.replace(**{
                name: getattr(features, name) for name, keep in zip(others, row) if keep
            })
            with_feature.append(coalition.replace(**{target: getattr(features, target)}))
            without_feature.append(coalition.replace(**{target: getattr(self.baseline, target)}))

        contributions = (
            self.model.predict_batch(features_to_matrix(with_feature))
            - self.model.predict_batch(features_to_matrix(without_feature))
        )
        return float(contributions.mean())

    @staticmethod
    def _narrate(top_features: List[Tuple[str, float]], prediction: float) -> str:
        lines = [f"Risk Level: {risk_label(prediction)} ({prediction * 100:.1f}%)", "", "Key factors:"]
        for name, value in top_features:
            impact = 'increases' if value > 0 else 'decreases'
            magnitude = 'significantly' if abs(value) > 0.1 else 'moderately'
            lines.append(f"• {FEATURE_DESCRIPTIONS.get(name, name)} {magnitude} {impact} risk")
        return "\n".join(lines) + "\n"


def explain_safely(explainer: Optional[SHAPExplainer], features: MLFeatures) -> Optional[Explanation]:
    """Explanation of a record, or None when no explainer is available."""
    if explainer is None:
        logger.debug("No explainer available; falling back to a rule-based explanation")
        return None
    return explainer.explain(features)
