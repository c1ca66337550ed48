"""
Tree-based models implemented from first principles.

This module provides a CART-style regression tree and a gradient boosted
classifier built from those trees on logistic residuals. The classifier is
the primary supervised risk scorer of the ensemble.

Example:
    >>> from fraud_ensemble.models.tree_models import GradientBoostingClassifier
    >>> model = GradientBoostingClassifier(learning_rate=0.5, max_depth=4, n_estimators=100)
    >>> model.fit(X_train, y_train)
    >>> probability = model.predict(X_test[0])
    >>> importance = model.get_feature_importance()
"""

import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from loguru import logger
from scipy.special import expit
from sklearn.metrics import accuracy_score, roc_auc_score

from fraud_ensemble.features.transaction_features import FEATURE_NAMES, MLFeatures

ArrayLike = Union[pd.DataFrame, np.ndarray, Sequence[Sequence[float]]]

# Gains below this are treated as no improvement (floating point noise).
MIN_GAIN = 1e-12


def clamped_sigmoid(x: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
    """Logistic function with the input clipped to [-500, 500]."""
    return expit(np.clip(x, -500, 500))


def _as_matrix(X: ArrayLike) -> Tuple[np.ndarray, Optional[List[str]]]:
    """Convert training input to a float matrix, keeping DataFrame column names."""
    if isinstance(X, pd.DataFrame):
        return X.to_numpy(dtype=float), [str(c) for c in X.columns]
    if isinstance(X, list) and X and isinstance(X[0], MLFeatures):
        return np.vstack([f.to_array() for f in X]), list(FEATURE_NAMES)
    return np.asarray(X, dtype=float), None


def _as_vector(x: Union[MLFeatures, Sequence[float], np.ndarray]) -> np.ndarray:
    if isinstance(x, MLFeatures):
        return x.to_array()
    return np.asarray(x, dtype=float)


def _default_feature_names(n_features: int) -> List[str]:
    if n_features == len(FEATURE_NAMES):
        return list(FEATURE_NAMES)
    return [f'feature_{i}' for i in range(n_features)]


@dataclass
class TreeNode:
    """Node of a regression tree; leaves carry a value."""
    value: Optional[float] = None
    feature: Optional[int] = None
    threshold: Optional[float] = None
    left: Optional['TreeNode'] = None
    right: Optional['TreeNode'] = None

    @property
    def is_leaf(self) -> bool:
        return self.value is not None


@dataclass
class SplitInfo:
    """Best split found for a node."""
    feature: int
    threshold: float
    gain: float


class DecisionTree:
    """
    CART regression tree split on variance reduction.

    Candidate thresholds are the midpoints between consecutive sorted unique
    values of each feature. The largest positive reduction wins; ties go to
    the first feature, then the first threshold, in enumeration order.

    Example:
        >>> tree = DecisionTree(max_depth=3)
        >>> tree.fit(X, residuals)
        >>> tree.predict(X[0])
    """

    def __init__(self, max_depth: int = 6, feature_names: Optional[List[str]] = None):
        """
        Initialize decision tree.

        Args:
            max_depth: Maximum depth of the tree
            feature_names: Names used as feature importance keys
        """
        self.max_depth = max_depth
        self.feature_names = feature_names
        self.root: Optional[TreeNode] = None
        self.feature_importance: Dict[str, float] = {}

    def fit(self, X: ArrayLike, y: Sequence[float]) -> 'DecisionTree':
        """
        Build the tree.

        Args:
            X: Training features (n_samples, n_features)
            y: Regression targets (labels or residuals)

        Returns:
            Self
        """
        X, columns = _as_matrix(X)
        y = np.asarray(y, dtype=float)
        if len(X) != len(y):
            raise ValueError(f"Got {len(X)} feature rows but {len(y)} targets")

        if X.ndim != 2:
            raise ValueError(f"Expected a 2D feature matrix, got shape {X.shape}")
        if self.feature_names is None:
            self.feature_names = columns or _default_feature_names(X.shape[1])

        self.feature_importance = {}
        self.root = self._build(X, y, depth=0)
        return self

    train = fit

    def predict(self, x: Union[MLFeatures, Sequence[float], np.ndarray]) -> float:
        """Root-to-leaf traversal for a single feature vector."""
        if self.root is None:
            return 0.0
        x = _as_vector(x)
        node = self.root
        while not node.is_leaf:
            node = node.left if x[node.feature] <= node.threshold else node.right
        return node.value

    def predict_batch(self, X: ArrayLike) -> np.ndarray:
        """Predict every row of a feature matrix."""
        X, _ = _as_matrix(X)
        out = np.zeros(len(X))
        if self.root is not None and len(X):
            self._route(self.root, X, np.arange(len(X)), out)
        return out

    def get_feature_importance(self) -> Dict[str, float]:
        """Cumulative split gain per feature."""
        return dict(self.feature_importance)

    def _route(self, node: TreeNode, X: np.ndarray, rows: np.ndarray, out: np.ndarray) -> None:
        if node.is_leaf:
            out[rows] = node.value
            return
        mask = X[rows, node.feature] <= node.threshold
        if mask.any():
            self._route(node.left, X, rows[mask], out)
        if not mask.all():
            self._route(node.right, X, rows[~mask], out)

    def _build(self, X: np.ndarray, y: np.ndarray, depth: int) -> TreeNode:
        if depth >= self.max_depth or len(y) < 2:
            return TreeNode(value=float(y.mean()) if len(y) else 0.0)

        split = self._find_best_split(X, y)
        if split is None:
            return TreeNode(value=float(y.mean()))

        name = self.feature_names[split.feature]
        self.feature_importance[name] = self.feature_importance.get(name, 0.0) + split.gain

        mask = X[:, split.feature] <= split.threshold
        return TreeNode(
            feature=split.feature,
            threshold=split.threshold,
            left=self._build(X[mask], y[mask], depth + 1),
            right=self._build(X[~mask], y[~mask], depth + 1)
        )

    @staticmethod
    def _find_best_split(X: np.ndarray, y: np.ndarray) -> Optional[SplitInfo]:
        """Scan every feature with cumulative sums; O(n log n) per feature."""
        n_samples, n_features = X.shape
        parent_variance = float(y.var())
        best: Optional[SplitInfo] = None
        best_gain = MIN_GAIN

        for feature in range(n_features):
            order = np.argsort(X[:, feature], kind='mergesort')
            values = X[order, feature]
            targets = y[order]

            # Split after position i wherever the next sorted value differs.
            positions = np.nonzero(values[1:] > values[:-1])[0]
            if positions.size == 0:
                continue

            cum_sum = np.cumsum(targets)
            cum_sq = np.cumsum(targets ** 2)

            n_left = positions + 1
            n_right = n_samples - n_left
            left_sum = cum_sum[positions]
            left_sq = cum_sq[positions]
            right_sum = cum_sum[-1] - left_sum
            right_sq = cum_sq[-1] - left_sq

            left_var = left_sq / n_left - (left_sum / n_left) ** 2
            right_var = right_sq / n_right - (right_sum / n_right) ** 2
            weighted = (n_left * left_var + n_right * right_var) / n_samples
            gains = parent_variance - weighted

            k = int(np.argmax(gains))
            if gains[k] > best_gain:
                best_gain = float(gains[k])
                position = positions[k]
                best = SplitInfo(
                    feature=feature,
                    threshold=float((values[position] + values[position + 1]) / 2),
                    gain=best_gain
                )

        return best


class GradientBoostingClassifier:
    """
    Gradient boosted trees on logistic residuals.

    Each round fits a shallow regression tree to ``label - sigmoid(raw)`` and
    adds ``learning_rate * tree(x)`` to the running raw score. Hyperparameters
    are fixed at construction.

    Example:
        >>> model = GradientBoostingClassifier(learning_rate=0.5)
        >>> model.fit(features_df, labels)
        >>> model.predict(features_df.iloc[0].values)
    """

    def __init__(
        self,
        learning_rate: float = 0.5,
        max_depth: int = 4,
        n_estimators: int = 100,
        max_boosting_rounds: int = 80,
        tree_depth_cap: int = 3,
        base_score: float = 0.0
    ):
        """
        Initialize gradient boosting classifier.

        Args:
            learning_rate: Shrinkage applied to every tree
            max_depth: Maximum tree depth
            n_estimators: Configured number of trees
            max_boosting_rounds: Hard cap on rounds actually trained
            tree_depth_cap: Hard cap on tree depth actually used
            base_score: Initial raw (logit) score
        """
        self._learning_rate = learning_rate
        self._max_depth = max_depth
        self._n_estimators = n_estimators
        self._max_boosting_rounds = max_boosting_rounds
        self._tree_depth_cap = tree_depth_cap
        self._base_score = base_score

        self.trees: List[DecisionTree] = []
        self.feature_importance: Dict[str, float] = {}
        self.feature_names: List[str] = list(FEATURE_NAMES)
        self.is_fitted = False

    @property
    def learning_rate(self) -> float:
        return self._learning_rate

    @property
    def max_depth(self) -> int:
        return self._max_depth

    @property
    def n_estimators(self) -> int:
        return self._n_estimators

    @property
    def n_rounds(self) -> int:
        """Rounds actually trained."""
        return min(self._n_estimators, self._max_boosting_rounds)

    def fit(self, X: ArrayLike, y: Sequence[float]) -> 'GradientBoostingClassifier':
        """
        Fit the ensemble; any previously trained trees are discarded.

        Args:
            X: Training features
            y: Binary labels

        Returns:
            Self
        """
        X, columns = _as_matrix(X)
        y = np.asarray(y, dtype=float)
        if len(X) != len(y):
            raise ValueError(f"Got {len(X)} feature rows but {len(y)} labels")
        if len(y) == 0:
            raise ValueError("Cannot fit on an empty training set")

        self.feature_names = columns or _default_feature_names(X.shape[1])
        logger.info(f"Fitting gradient boosting on {len(y)} samples ({self.n_rounds} rounds)")
        start = time.perf_counter()

        trees: List[DecisionTree] = []
        importance: Dict[str, float] = {}
        raw = np.full(len(y), self._base_score)
        depth = min(self._max_depth, self._tree_depth_cap)

        for round_idx in range(self.n_rounds):
            residuals = y - clamped_sigmoid(raw)

            tree = DecisionTree(max_depth=depth, feature_names=self.feature_names)
            tree.fit(X, residuals)
            trees.append(tree)

            raw = raw + self._learning_rate * tree.predict_batch(X)

            for name, gain in tree.get_feature_importance().items():
                importance[name] = importance.get(name, 0.0) + gain

            logger.debug(
                f"Round {round_idx + 1}/{self.n_rounds}: "
                f"mean |residual|={np.abs(residuals).mean():.4f}"
            )

        self.trees = trees
        self.feature_importance = importance
        self.is_fitted = True

        logger.info(f"Gradient boosting fitted in {time.perf_counter() - start:.2f}s")
        return self

    train = fit

    def decision_function(self, x: Union[MLFeatures, Sequence[float], np.ndarray]) -> float:
        """Raw (logit) score of a single feature vector."""
        return float(self.decision_function_batch(_as_vector(x).reshape(1, -1))[0])

    def predict(self, x: Union[MLFeatures, Sequence[float], np.ndarray]) -> float:
        """Fraud probability of a single feature vector, in [0, 1]."""
        return float(clamped_sigmoid(self.decision_function(x)))

    def decision_function_batch(self, X: ArrayLike) -> np.ndarray:
        """Raw (logit) scores of every row."""
        X, _ = _as_matrix(X)
        raw = np.full(len(X), self._base_score, dtype=float)
        for tree in self.trees:
            raw += self._learning_rate * tree.predict_batch(X)
        return raw

    def predict_batch(self, X: ArrayLike) -> np.ndarray:
        """Fraud probabilities of every row."""
        return clamped_sigmoid(self.decision_function_batch(X))

    def get_feature_importance(self) -> Dict[str, float]:
        """Split gain accumulated over all trees, per feature."""
        return dict(self.feature_importance)

    def evaluate(self, X: ArrayLike, y: Sequence[int], threshold: float = 0.5) -> Dict[str, float]:
        """
        Evaluate the classifier.

        Args:
            X: Features
            y: Binary labels
            threshold: Decision threshold for accuracy

        Returns:
            Dictionary with accuracy and (when both classes are present) auc
        """
        if not self.is_fitted:
            raise ValueError("Model not fitted. Call fit() first.")

        y = np.asarray(y)
        proba = self.predict_batch(X)
        metrics = {'accuracy': float(accuracy_score(y, (proba >= threshold).astype(int)))}
        if len(np.unique(y)) == 2:
            metrics['auc'] = float(roc_auc_score(y, proba))
        return metrics
