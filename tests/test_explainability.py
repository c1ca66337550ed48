"""
Test suite for Shapley attribution.
"""

import numpy as np
import pandas as pd
import pytest

from fraud_ensemble.explainability.shap_explainer import SHAPExplainer, risk_label
from fraud_ensemble.features.transaction_features import FEATURE_NAMES, MLFeatures
from fraud_ensemble.models.tree_models import GradientBoostingClassifier


@pytest.fixture
def amount_only_model():
    """Classifier whose labels depend on the amount feature alone."""
    rng = np.random.default_rng(42)
    X = pd.DataFrame(rng.random((300, len(FEATURE_NAMES))), columns=FEATURE_NAMES)
    y = (X['amount'] > 0.7).astype(int)
    model = GradientBoostingClassifier(n_estimators=40).fit(X, y)
    return model, X


@pytest.fixture
def risky_record():
    return MLFeatures.from_array([0.95] + [0.5] * (len(FEATURE_NAMES) - 1))


class TestSHAPExplainer:
    """Test the Monte-Carlo Shapley approximator."""

    def test_single_feature_model_is_additive(self, amount_only_model, risky_record):
        model, X = amount_only_model
        explainer = SHAPExplainer.from_training_data(model, X, n_samples=100, random_state=42)
        result = explainer.explain(risky_record)

        total = sum(result.shap_values.values())
        assert total == pytest.approx(result.prediction - result.baseline_prediction, abs=0.05)

    def test_unused_features_get_zero(self, amount_only_model, risky_record):
        model, X = amount_only_model
        result = SHAPExplainer.from_training_data(model, X, random_state=1).explain(risky_record)

        assert set(result.shap_values) == set(FEATURE_NAMES)
        assert result.shap_values['amount'] > 0.5
        for name in FEATURE_NAMES[1:]:
            assert result.shap_values[name] == pytest.approx(0.0)

    def test_baseline_is_training_mean(self, amount_only_model):
        model, X = amount_only_model
        explainer = SHAPExplainer.from_training_data(model, X)

        assert explainer.baseline.amount == pytest.approx(X['amount'].mean())
        assert explainer.baseline_prediction == pytest.approx(model.predict(explainer.baseline))

    def test_seeded_explanations_repeat(self, amount_only_model, risky_record):
        model, X = amount_only_model
        explainer = SHAPExplainer.from_training_data(model, X, n_samples=30, random_state=9)

        assert explainer.explain(risky_record).shap_values == explainer.explain(risky_record).shap_values

    def test_explanation_text(self, amount_only_model, risky_record):
        model, X = amount_only_model
        result = SHAPExplainer.from_training_data(model, X, top_k=3, random_state=42).explain(risky_record)
        lines = result.explanation.strip().split("\n")

        assert lines[0].startswith("Risk Level: HIGH (")
        assert lines[2] == "Key factors:"
        assert lines[3] == "• Transaction amount significantly increases risk"
        assert len(lines) == 6
        assert [name for name, _ in result.top_features][0] == 'amount'

    def test_risk_label(self):
        assert risk_label(0.71) == 'HIGH'
        assert risk_label(0.7) == 'MEDIUM'
        assert risk_label(0.41) == 'MEDIUM'
        assert risk_label(0.4) == 'LOW'

    def test_requires_fitted_model(self, risky_record):
        with pytest.raises(ValueError, match="not fitted"):
            SHAPExplainer(GradientBoostingClassifier(), risky_record)

    def test_empty_training_set(self, amount_only_model):
        model, _ = amount_only_model
        with pytest.raises(ValueError):
            SHAPExplainer.from_training_data(model, np.empty((0, len(FEATURE_NAMES))))

    def test_to_dict(self, amount_only_model, risky_record):
        model, X = amount_only_model
        payload = SHAPExplainer.from_training_data(model, X, n_samples=5).explain(risky_record).to_dict()

        assert set(payload) == {
            'shap_values', 'prediction', 'explanation', 'baseline_prediction', 'top_features'
        }


class TestEngineExplainer:
    """
    Attribution over the engine's trained classifier.

    Coalitions join with probability 0.5, so the values add up to the
    prediction difference only when the record leaves the baseline in at
    most two features.
    """

    def test_one_changed_feature_takes_whole_difference(self, trained_engine):
        explainer = trained_engine._current_bundle().explainer
        record = explainer.baseline.replace(device_trust=0.1)
        result = explainer.explain(record)

        assert sum(result.shap_values.values()) == pytest.approx(
            result.prediction - result.baseline_prediction, abs=1e-9
        )
        for name in FEATURE_NAMES:
            if name != 'device_trust':
                assert result.shap_values[name] == pytest.approx(0.0, abs=1e-12)

    def test_two_changed_features_sum_close_to_difference(self, trained_engine):
        bundle = trained_engine._current_bundle()
        explainer = SHAPExplainer(bundle.xgboost, bundle.explainer.baseline, n_samples=4000, random_state=0)
        record = explainer.baseline.replace(device_trust=0.1, pin_attempts=0.8)
        result = explainer.explain(record)

        assert sum(result.shap_values.values()) == pytest.approx(
            result.prediction - result.baseline_prediction, abs=0.05
        )
