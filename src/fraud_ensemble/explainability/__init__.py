"""Shapley-value attribution of fraud scores."""

from fraud_ensemble.explainability.shap_explainer import Explanation, SHAPExplainer

__all__ = ['Explanation', 'SHAPExplainer']
