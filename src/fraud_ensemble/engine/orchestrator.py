"""
Ensemble Fraud Risk Orchestrator

Fuses the outputs of the ensemble's models into a single fraud prediction:
- Gradient boosted trees (primary supervised score)
- Autoencoder reconstruction error (anomaly score)
- LSTM sequence analysis of the user's recent history
- Graph fraud ring detection over the user / agent / device graph
- Shapley attribution and rule-based fraud patterns on top

The fast path (``predict_fraud``) is cached and replaces the sequence and
graph scores with configured defaults; ``predict_fraud_detailed`` runs every
model and is never cached.

Trained models live in an immutable ModelBundle. Predictions read the
current bundle reference; retraining builds a new bundle off to the side
and swaps it in, so readers never observe partially trained parameters.

Example:
    >>> from fraud_ensemble.engine.orchestrator import EnsembleOrchestrator
    >>> engine = EnsembleOrchestrator()
    >>> engine.initialize()
    >>> prediction = engine.predict_fraud({
    ...     'id': 'txn_1', 'amount': 75, 'type': 'airtime',
    ...     'timestamp': '2024-03-05T10:15:00Z', 'merchantCategory': 'telecom'
    ... })
    >>> prediction.risk_level
    <RiskLevel.LOW: 'low'>
"""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from loguru import logger

from fraud_ensemble.config import EngineConfig
from fraud_ensemble.data.schema import (
    FraudPattern,
    FraudPrediction,
    ModelInsights,
    RiskLevel,
    Transaction,
)
from fraud_ensemble.data.synthetic import SyntheticDataGenerator
from fraud_ensemble.engine.cache import PredictionCache, make_cache_key
from fraud_ensemble.engine.patterns import SUPPORTED_PATTERNS, ModelSignals, detect_patterns
from fraud_ensemble.exceptions import EngineInitializationError, RetrainingError
from fraud_ensemble.explainability.shap_explainer import SHAPExplainer, explain_safely
from fraud_ensemble.features.transaction_features import (
    AUTOENCODER_FEATURES,
    FEATURE_NAMES,
    FeatureExtractor,
    MLFeatures,
)
from fraud_ensemble.models.anomaly_detection import AutoencoderAnomalyDetector
from fraud_ensemble.models.graph_models import (
    GraphEdge,
    GraphNeuralNetwork,
    GraphNode,
    build_transaction_graph,
)
from fraud_ensemble.models.sequence_models import LSTMTimeSeriesAnalyzer, SequencePattern
from fraud_ensemble.models.tree_models import GradientBoostingClassifier

MODEL_TYPES = ['XGBoost', 'Graph Neural Network', 'Autoencoder', 'LSTM']

RECOMMENDED_ACTIONS: Dict[RiskLevel, str] = {
    RiskLevel.CRITICAL: 'BLOCK_TRANSACTION - Immediate intervention required. Contact security team.',
    RiskLevel.HIGH: 'REQUIRE_ADDITIONAL_AUTH - Request additional verification (OTP, biometric).',
    RiskLevel.MEDIUM: 'MONITOR_CLOSELY - Flag for manual review and enhanced monitoring.',
    RiskLevel.LOW: 'ALLOW - Continue with standard processing and routine monitoring.',
}

FeatureInput = Union[pd.DataFrame, np.ndarray, Sequence[MLFeatures]]
GraphData = Tuple[List[GraphNode], List[GraphEdge], Dict[str, int]]


def determine_risk_level(score: float) -> RiskLevel:
    """Map a fused score to its tier."""
    if score >= 0.85:
        return RiskLevel.CRITICAL
    if score >= 0.7:
        return RiskLevel.HIGH
    if score >= 0.4:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def calculate_confidence(score: float, features: MLFeatures) -> float:
    """Average of feature completeness and distance of the score from 0.5."""
    values = features.to_array()
    completeness = np.count_nonzero(values) / len(values)
    return float(min((completeness + abs(score - 0.5) * 2) / 2, 1.0))


def basic_explanation(score: float, patterns: Sequence[FraudPattern]) -> str:
    """Explanation used when no Shapley attribution is available."""
    level = determine_risk_level(score)
    lines = [f"AI Risk Assessment: {level.value.upper()} ({score * 100:.1f}%)", ""]
    if patterns:
        lines.append("Detected Fraud Patterns:")
        lines.extend(
            f"• {p.description} ({p.confidence * 100:.1f}% confidence)" for p in patterns
        )
    else:
        lines.extend([
            "No specific fraud patterns detected. Risk assessment based on:",
            "• Machine learning model predictions",
            "• Behavioral analysis",
            "• Transaction characteristics",
        ])
    return "\n".join(lines) + "\n"


def _as_feature_frame(features: FeatureInput) -> pd.DataFrame:
    if isinstance(features, pd.DataFrame):
        return features[FEATURE_NAMES].astype(float).reset_index(drop=True)
    if len(features) and isinstance(features[0], MLFeatures):
        return pd.DataFrame([f.to_dict() for f in features], columns=FEATURE_NAMES)
    return pd.DataFrame(np.asarray(features, dtype=float).reshape(-1, len(FEATURE_NAMES)), columns=FEATURE_NAMES)


@dataclass(frozen=True)
class ModelBundle:
    """Immutable snapshot of every trained model and its training data."""
    xgboost: GradientBoostingClassifier
    autoencoder: AutoencoderAnomalyDetector
    lstm: LSTMTimeSeriesAnalyzer
    graph: GraphNeuralNetwork
    explainer: Optional[SHAPExplainer]
    training_features: pd.DataFrame
    training_labels: pd.Series
    metrics: Dict[str, float] = field(default_factory=dict)
    trained_at: str = field(default_factory=lambda: datetime.now().isoformat())


class EnsembleOrchestrator:
    """
    Transaction fraud risk engine.

    Models are trained once, on first use or on an explicit ``initialize()``
    call. Concurrent first callers wait for the same training run; a failed
    run is reported to every caller and never retried on that instance.

    Example:
        >>> engine = EnsembleOrchestrator(EngineConfig('config/engine_config.yaml'))
        >>> result = engine.predict_fraud_detailed(transaction)
        >>> result.ml_insights.graph_risk_score
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        training_data: Optional[Tuple[FeatureInput, Sequence[int]]] = None,
        graph_data: Optional[GraphData] = None
    ):
        """
        Initialize the orchestrator (no training happens here).

        Args:
            config: Engine configuration
            training_data: Initial (features, labels); synthetic data when omitted
            graph_data: Initial (nodes, edges, labels) for the graph model;
                a synthetic graph when omitted
        """
        self.config = config or EngineConfig()
        self.training_data = training_data
        self.graph_data = graph_data

        self.feature_extractor = FeatureExtractor(
            history_window=self.config.lstm.history_window,
            history_size=self.config.lstm.input_size
        )
        self.cache: PredictionCache[FraudPrediction] = PredictionCache(self.config.engine.cache_size)

        self._bundle: Optional[ModelBundle] = None
        self._bundle_lock = threading.Lock()
        self._init_lock = threading.Lock()
        self._init_future: Optional[Future] = None
        self._retrain_lock = threading.Lock()
        self._is_training = False

        logger.info("Initialized EnsembleOrchestrator")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """
        Train the initial models exactly once.

        Raises:
            EngineInitializationError: If the (possibly earlier) training run failed
        """
        with self._init_lock:
            future = self._init_future
            owner = future is None
            if owner:
                future = Future()
                self._init_future = future

        if owner:
            try:
                bundle = self._build_initial_bundle()
            except Exception as exc:
                logger.exception("Engine initialization failed")
                future.set_exception(exc)
            else:
                with self._bundle_lock:
                    self._bundle = bundle
                future.set_result(None)

        try:
            future.result()
        except Exception as exc:
            raise EngineInitializationError(f"Engine initialization failed: {exc}") from exc

    @property
    def is_initialized(self) -> bool:
        future = self._init_future
        return future is not None and future.done() and future.exception() is None

    def _current_bundle(self) -> ModelBundle:
        self.initialize()
        with self._bundle_lock:
            return self._bundle

    def _build_initial_bundle(self) -> ModelBundle:
        cfg = self.config
        logger.info("Training initial fraud models")
        start = time.perf_counter()

        if self.training_data is not None:
            features, labels = self.training_data
            features = _as_feature_frame(features)
            labels = pd.Series(np.asarray(labels, dtype=int), name='is_fraud')
        else:
            features, labels = SyntheticDataGenerator(cfg.random_state).generate(
                n_samples=cfg.engine.synthetic_samples,
                fraud_rate=cfg.engine.fraud_rate
            )

        nodes, edges, node_labels = self.graph_data or SyntheticDataGenerator(cfg.random_state).generate_graph()
        graph = GraphNeuralNetwork(
            embedding_size=cfg.graph.embedding_size,
            learning_rate=cfg.graph.learning_rate,
            epochs=cfg.graph.epochs,
            node_threshold=cfg.graph.node_threshold,
            edge_threshold=cfg.graph.edge_threshold,
            magnitude_normalizer=cfg.graph.magnitude_normalizer,
            random_state=cfg.random_state
        ).fit(nodes, edges, node_labels)

        lstm = LSTMTimeSeriesAnalyzer(
            input_size=cfg.lstm.input_size,
            hidden_size=cfg.lstm.hidden_size,
            sequence_length=cfg.lstm.sequence_length,
            distance_normalizer=cfg.lstm.distance_normalizer,
            random_state=cfg.random_state
        )

        bundle = self._train_bundle(features, labels, lstm, graph)
        logger.info(f"Initial training completed in {time.perf_counter() - start:.2f}s")
        return bundle

    def _train_bundle(
        self,
        features: pd.DataFrame,
        labels: pd.Series,
        lstm: LSTMTimeSeriesAnalyzer,
        graph: GraphNeuralNetwork
    ) -> ModelBundle:
        """Train the supervised and reconstruction models into a new bundle."""
        cfg = self.config
        if len(features) != len(labels):
            raise ValueError(f"Got {len(features)} feature rows but {len(labels)} labels")

        xgboost = GradientBoostingClassifier(
            learning_rate=cfg.gradient_boosting.learning_rate,
            max_depth=cfg.gradient_boosting.max_depth,
            n_estimators=cfg.gradient_boosting.n_estimators,
            max_boosting_rounds=cfg.gradient_boosting.max_boosting_rounds,
            tree_depth_cap=cfg.gradient_boosting.tree_depth_cap,
            base_score=cfg.gradient_boosting.base_score
        ).fit(features, labels)

        normal = features.loc[labels.values == 0, AUTOENCODER_FEATURES]
        normal = normal.tail(cfg.autoencoder.max_training_samples)
        autoencoder = AutoencoderAnomalyDetector(
            input_size=cfg.autoencoder.input_size,
            hidden_size=cfg.autoencoder.hidden_size,
            learning_rate=cfg.autoencoder.learning_rate,
            epochs=cfg.autoencoder.epochs,
            anomaly_threshold=cfg.autoencoder.anomaly_threshold,
            random_state=cfg.random_state
        ).fit(normal)

        explainer = SHAPExplainer.from_training_data(
            xgboost,
            features,
            n_samples=cfg.shap.n_samples,
            top_k=cfg.shap.top_k,
            random_state=cfg.random_state
        )

        metrics = xgboost.evaluate(features, labels)
        logger.info(f"Training set metrics: {metrics}")

        return ModelBundle(
            xgboost=xgboost,
            autoencoder=autoencoder,
            lstm=lstm,
            graph=graph,
            explainer=explainer,
            training_features=features,
            training_labels=labels,
            metrics=metrics
        )

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def predict_fraud(self, transaction: Union[Transaction, Mapping[str, Any]]) -> FraudPrediction:
        """
        Fast, cached scoring.

        The sequence and graph models are skipped and replaced by the
        configured default scores.

        Args:
            transaction: Transaction or collaborator payload

        Returns:
            FraudPrediction (the cached object on a cache hit)
        """
        transaction = self._coerce(transaction)
        key = make_cache_key(transaction)

        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Prediction cache hit for {key}")
            return cached

        bundle = self._current_bundle()
        prediction = self._score(transaction, bundle, detailed=False)
        with self._bundle_lock:
            if self._bundle is not bundle:
                # Scored by models that a retrain has since replaced.
                logger.debug(f"Models swapped while scoring {key}; result not cached")
                return prediction
            return self.cache.setdefault(key, prediction)

    def predict_fraud_detailed(self, transaction: Union[Transaction, Mapping[str, Any]]) -> FraudPrediction:
        """
        Full scoring with every model; never cached.

        Args:
            transaction: Transaction or collaborator payload

        Returns:
            FraudPrediction
        """
        return self._score(self._coerce(transaction), self._current_bundle(), detailed=True)

    def fuse(self, xgboost: float, anomaly: float, lstm: float, graph: float) -> float:
        """Weighted sum of the per-model scores."""
        weights = self.config.engine.weights
        return (
            xgboost * weights.xgboost
            + anomaly * weights.anomaly
            + lstm * weights.lstm
            + graph * weights.graph
        )

    @staticmethod
    def _coerce(transaction: Union[Transaction, Mapping[str, Any]]) -> Transaction:
        if isinstance(transaction, Transaction):
            return transaction
        return Transaction.from_dict(transaction)

    def _score(self, transaction: Transaction, bundle: ModelBundle, detailed: bool) -> FraudPrediction:
        features = self.feature_extractor.extract(transaction)

        xgboost_score = bundle.xgboost.predict(features)
        anomaly = bundle.autoencoder.detect_anomaly(features.autoencoder_view())

        if detailed:
            history = self.feature_extractor.transaction_history(transaction)
            sequence = bundle.lstm.analyze_transaction_sequence(history)
            nodes, edges = build_transaction_graph(transaction)
            ring = bundle.graph.detect_fraud_ring(nodes, edges)

            lstm_score = sequence.anomaly_score
            lstm_pattern = sequence.pattern
            graph_score = ring.risk_score
            risk_nodes = tuple(ring.suspicious_nodes)
        else:
            lstm_score = self.config.engine.fast_path_lstm_score
            lstm_pattern = SequencePattern.NORMAL
            graph_score = self.config.engine.fast_path_graph_score
            risk_nodes = ()

        score = self.fuse(xgboost_score, anomaly.anomaly_score, lstm_score, graph_score)
        patterns = detect_patterns(
            transaction,
            features,
            ModelSignals(
                xgboost_score=xgboost_score,
                anomaly_score=anomaly.anomaly_score,
                lstm_pattern=lstm_pattern,
                graph_suspicious=len(risk_nodes) > 0
            )
        )
        explanation = explain_safely(bundle.explainer, features)
        level = determine_risk_level(score)

        return FraudPrediction(
            transaction_id=transaction.id,
            risk_score=score,
            risk_level=level,
            is_fraudulent=score >= self.config.engine.fraud_threshold,
            confidence=calculate_confidence(score, features),
            detected_patterns=tuple(patterns),
            explanation=explanation.explanation if explanation else basic_explanation(score, patterns),
            recommended_action=RECOMMENDED_ACTIONS[level],
            timestamp=datetime.now().isoformat(),
            ml_insights=ModelInsights(
                xgboost_score=xgboost_score,
                anomaly_score=anomaly.anomaly_score,
                lstm_score=lstm_score,
                lstm_pattern=lstm_pattern.value,
                graph_risk_score=graph_score,
                graph_risk_nodes=risk_nodes,
                feature_importance=dict(explanation.shap_values) if explanation else {}
            )
        )

    # ------------------------------------------------------------------
    # Model management
    # ------------------------------------------------------------------

    def get_model_metrics(self) -> Dict[str, Any]:
        """
        Describe the active models.

        Accuracy and AUC are measured on the training set.

        Returns:
            Dictionary of model metrics
        """
        bundle = self._current_bundle()
        return {
            'accuracy': bundle.metrics.get('accuracy'),
            'auc': bundle.metrics.get('auc'),
            'is_training': self._is_training,
            'training_data_size': len(bundle.training_labels),
            'supported_patterns': list(SUPPORTED_PATTERNS),
            'last_training_date': bundle.trained_at,
            'model_types': list(MODEL_TYPES),
            'feature_importance': bundle.xgboost.get_feature_importance(),
            'cache_size': len(self.cache),
        }

    def retrain_model(
        self,
        features: FeatureInput,
        labels: Sequence[int],
        timeout: Optional[float] = None
    ) -> Dict[str, Any]:
        """
        Retrain on the accumulated training data plus new samples.

        The boosting model and autoencoder are refit on the combined set off
        to the side; on success the new bundle replaces the old one and the
        prediction cache is cleared.

        Args:
            features: New feature records
            labels: Their binary labels
            timeout: Seconds to wait for training; None waits indefinitely

        Returns:
            Model metrics after the swap

        Raises:
            RetrainingError: If training fails or times out (old models stay active)
        """
        if len(features) == 0:
            logger.warning("Retraining requested with no new samples; models unchanged")
            return self.get_model_metrics()

        with self._retrain_lock:
            current = self._current_bundle()
            try:
                new_features = _as_feature_frame(features)
                new_labels = np.asarray(labels, dtype=int)
                if len(new_features) != len(new_labels):
                    raise ValueError(
                        f"Got {len(new_features)} feature rows but {len(new_labels)} labels"
                    )
                combined_features = pd.concat(
                    [current.training_features, new_features], ignore_index=True
                )
                combined_labels = pd.concat(
                    [current.training_labels, pd.Series(new_labels, name='is_fraud')],
                    ignore_index=True
                )
            except (ValueError, KeyError) as exc:
                raise RetrainingError(f"Invalid retraining data: {exc}") from exc

            logger.info(
                f"Retraining on {len(combined_labels)} samples "
                f"({len(new_labels)} new)"
            )
            start = time.perf_counter()
            self._is_training = True
            try:
                bundle = self._run_training(
                    combined_features, combined_labels, current, timeout
                )
            finally:
                self._is_training = False

            with self._bundle_lock:
                self._bundle = bundle
                self.cache.clear()

            logger.info(f"Retraining completed in {time.perf_counter() - start:.2f}s")

        return self.get_model_metrics()

    def _run_training(
        self,
        features: pd.DataFrame,
        labels: pd.Series,
        current: ModelBundle,
        timeout: Optional[float]
    ) -> ModelBundle:
        if timeout is None:
            try:
                return self._train_bundle(features, labels, current.lstm, current.graph)
            except Exception as exc:
                logger.exception("Retraining failed; keeping previous models")
                raise RetrainingError(f"Retraining failed: {exc}") from exc

        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='fraud-retrain')
        try:
            future = executor.submit(
                self._train_bundle, features, labels, current.lstm, current.graph
            )
            try:
                return future.result(timeout=timeout)
            except FutureTimeoutError as exc:
                logger.error(f"Retraining timed out after {timeout}s; keeping previous models")
                raise RetrainingError(f"Retraining timed out after {timeout}s") from exc
            except Exception as exc:
                logger.exception("Retraining failed; keeping previous models")
                raise RetrainingError(f"Retraining failed: {exc}") from exc
        finally:
            # A timed out run finishes in the background and is discarded.
            executor.shutdown(wait=False)

    def clear_cache(self) -> None:
        """Drop every cached prediction."""
        self.cache.clear()
