"""
Test suite for models layer.

Tests the boosted trees, autoencoder, LSTM analyzer and graph model.
"""

import numpy as np
import pandas as pd
import pytest

from fraud_ensemble.features.transaction_features import FEATURE_NAMES


@pytest.fixture
def separable_data():
    """Labels determined by the first of three features."""
    rng = np.random.default_rng(42)
    X = rng.random((200, 3))
    y = (X[:, 0] > 0.5).astype(int)
    return X, y


@pytest.fixture
def synthetic_training_data():
    """Synthetic mobile money feature records."""
    from fraud_ensemble.data.synthetic import SyntheticDataGenerator

    return SyntheticDataGenerator(random_state=42).generate(n_samples=400, fraud_rate=0.3)


class TestDecisionTree:
    """Test the regression tree."""

    def test_two_point_separability(self):
        from fraud_ensemble.models.tree_models import DecisionTree

        tree = DecisionTree(max_depth=3).fit([[0.0], [1.0]], [0.0, 1.0])

        assert tree.predict([0.0]) == 0.0
        assert tree.predict([1.0]) == 1.0
        assert tree.root.threshold == pytest.approx(0.5)

    def test_first_feature_wins_ties(self):
        from fraud_ensemble.models.tree_models import DecisionTree

        X = np.array([[0.0, 0.0], [0.0, 0.0], [1.0, 1.0], [1.0, 1.0]])
        tree = DecisionTree(max_depth=1).fit(X, [0, 0, 1, 1])

        assert tree.root.feature == 0
        assert set(tree.get_feature_importance()) == {'feature_0'}

    def test_constant_targets_make_a_leaf(self):
        from fraud_ensemble.models.tree_models import DecisionTree

        tree = DecisionTree(max_depth=4).fit(np.random.default_rng(0).random((20, 2)), [0.3] * 20)
        assert tree.root.is_leaf
        assert tree.predict([0.5, 0.5]) == pytest.approx(0.3)

    def test_batch_matches_single(self, separable_data):
        from fraud_ensemble.models.tree_models import DecisionTree

        X, y = separable_data
        tree = DecisionTree(max_depth=3).fit(X, y)
        np.testing.assert_allclose(tree.predict_batch(X), [tree.predict(x) for x in X])

    def test_untrained_tree_predicts_zero(self):
        from fraud_ensemble.models.tree_models import DecisionTree

        assert DecisionTree().predict([1.0, 2.0]) == 0.0

    def test_length_mismatch(self):
        from fraud_ensemble.models.tree_models import DecisionTree

        with pytest.raises(ValueError):
            DecisionTree().fit([[0.0], [1.0]], [0.0])


class TestGradientBoosting:
    """Test the boosted classifier."""

    def test_probabilities_bounded(self, synthetic_training_data):
        from fraud_ensemble.models.tree_models import GradientBoostingClassifier

        X, y = synthetic_training_data
        model = GradientBoostingClassifier(n_estimators=20).fit(X, y)
        proba = model.predict_batch(X)

        assert proba.shape == (len(X),)
        assert np.all((proba >= 0) & (proba <= 1))
        assert 0.0 <= model.predict(np.full(14, 50.0)) <= 1.0
        assert 0.0 <= model.predict(np.full(14, -50.0)) <= 1.0

    def test_learns_separable_data(self, separable_data):
        from fraud_ensemble.models.tree_models import GradientBoostingClassifier

        X, y = separable_data
        model = GradientBoostingClassifier().fit(X, y)

        assert model.predict([0.9, 0.5, 0.5]) > 0.9
        assert model.predict([0.1, 0.5, 0.5]) < 0.1
        assert set(model.get_feature_importance()) == {'feature_0'}

    def test_rounds_and_depth_capped(self, separable_data):
        from fraud_ensemble.models.tree_models import GradientBoostingClassifier

        X, y = separable_data
        model = GradientBoostingClassifier(
            n_estimators=100, max_boosting_rounds=5, max_depth=6, tree_depth_cap=2
        ).fit(X, y)

        assert model.n_rounds == 5
        assert len(model.trees) == 5
        assert all(tree.max_depth == 2 for tree in model.trees)

    def test_refit_discards_previous_trees(self, separable_data):
        from fraud_ensemble.models.tree_models import GradientBoostingClassifier

        X, y = separable_data
        model = GradientBoostingClassifier(n_estimators=10)
        model.fit(X, y)
        model.fit(X, y)
        assert len(model.trees) == 10

    def test_base_score_shared_by_fit_and_predict(self, separable_data):
        from scipy.special import expit

        from fraud_ensemble.models.tree_models import GradientBoostingClassifier

        X, _ = separable_data
        assert GradientBoostingClassifier(n_estimators=0).fit(X, np.ones(len(X))).predict(X[0]) == 0.5

        # One round on all-positive labels fits the constant residual left at the base score.
        model = GradientBoostingClassifier(n_estimators=1, learning_rate=0.5, base_score=2.0)
        model.fit(X, np.ones(len(X)))
        assert model.predict(X[0]) == pytest.approx(expit(2.0 + 0.5 * (1 - expit(2.0))))

    def test_hyperparameters_read_only(self):
        from fraud_ensemble.models.tree_models import GradientBoostingClassifier

        model = GradientBoostingClassifier(learning_rate=0.2)
        with pytest.raises(AttributeError):
            model.learning_rate = 0.9
        assert model.learning_rate == 0.2

    def test_feature_names_from_dataframe(self, synthetic_training_data):
        from fraud_ensemble.models.tree_models import GradientBoostingClassifier

        X, y = synthetic_training_data
        model = GradientBoostingClassifier(n_estimators=10).fit(X, y)
        assert set(model.get_feature_importance()) <= set(FEATURE_NAMES)
        assert sum(model.get_feature_importance().values()) > 0

    def test_evaluate(self, synthetic_training_data):
        from fraud_ensemble.models.tree_models import GradientBoostingClassifier

        X, y = synthetic_training_data
        metrics = GradientBoostingClassifier(n_estimators=30).fit(X, y).evaluate(X, y)

        assert metrics['accuracy'] > 0.9
        assert metrics['auc'] > 0.9

    def test_evaluate_requires_fit(self):
        from fraud_ensemble.models.tree_models import GradientBoostingClassifier

        with pytest.raises(ValueError, match="not fitted"):
            GradientBoostingClassifier().evaluate([[0.0]], [0])

    def test_empty_training_set(self):
        from fraud_ensemble.models.tree_models import GradientBoostingClassifier

        with pytest.raises(ValueError):
            GradientBoostingClassifier().fit(np.empty((0, 14)), [])


class TestAutoencoder:
    """Test the reconstruction-error detector."""

    def test_converges_on_normal_samples(self):
        from fraud_ensemble.models.anomaly_detection import AutoencoderAnomalyDetector

        rng = np.random.default_rng(0)
        base = np.linspace(0.2, 0.8, 12)
        samples = base + rng.uniform(-0.02, 0.02, (10, 12))

        detector = AutoencoderAnomalyDetector(learning_rate=0.05, epochs=200, random_state=42)
        before = detector.reconstruction_error(base)
        detector.fit(samples)
        after = detector.reconstruction_error(base)

        assert after < 0.1
        assert after < before
        assert detector.is_fitted

    def test_anomaly_score_clamped(self):
        from fraud_ensemble.models.anomaly_detection import AutoencoderAnomalyDetector

        detector = AutoencoderAnomalyDetector(random_state=1)
        result = detector.detect_anomaly(np.full(12, 5.0))

        assert result.is_anomaly
        assert result.anomaly_score == 1.0
        assert result.reconstruction_error > detector.anomaly_threshold

    def test_reconstruction_error_is_rmse(self):
        from fraud_ensemble.models.anomaly_detection import AutoencoderAnomalyDetector

        detector = AutoencoderAnomalyDetector(random_state=3)
        x = np.linspace(0, 1, 12)
        expected = np.sqrt(np.mean((x - detector.reconstruct(x)) ** 2))
        assert detector.reconstruction_error(x) == pytest.approx(expected)

    def test_empty_training_set_leaves_weights(self):
        from fraud_ensemble.models.anomaly_detection import AutoencoderAnomalyDetector

        detector = AutoencoderAnomalyDetector(random_state=5)
        weights = detector.encoder.weights.copy()
        detector.fit(np.empty((0, 12)))

        np.testing.assert_array_equal(detector.encoder.weights, weights)
        assert not detector.is_fitted

    def test_wrong_width_rejected(self):
        from fraud_ensemble.models.anomaly_detection import AutoencoderAnomalyDetector

        with pytest.raises(ValueError):
            AutoencoderAnomalyDetector().fit(np.zeros((5, 3)))

    def test_accepts_dataframe(self, synthetic_training_data):
        from fraud_ensemble.features.transaction_features import AUTOENCODER_FEATURES
        from fraud_ensemble.models.anomaly_detection import AutoencoderAnomalyDetector

        X, y = synthetic_training_data
        normal = X.loc[y.values == 0, AUTOENCODER_FEATURES].head(50)
        detector = AutoencoderAnomalyDetector(epochs=2, random_state=0).fit(normal)
        scores = detector.predict_scores(normal)

        assert scores.shape == (len(normal),)
        assert np.all((scores >= 0) & (scores <= 1))


class TestLSTM:
    """Test the sequence analyzer."""

    def test_short_history_is_normal(self):
        from fraud_ensemble.models.sequence_models import LSTMTimeSeriesAnalyzer, SequencePattern

        analyzer = LSTMTimeSeriesAnalyzer(random_state=42)
        for history in ([], [[4.0, 10, 2, 0.2, 0]]):
            result = analyzer.analyze_transaction_sequence(history)
            assert result.anomaly_score == 0.0
            assert result.pattern == SequencePattern.NORMAL
            assert len(result.predicted_next) == 10

    def test_anomaly_score_averages_over_every_position(self):
        from fraud_ensemble.models.sequence_models import LSTMTimeSeriesAnalyzer

        analyzer = LSTMTimeSeriesAnalyzer(random_state=42)
        history = [[0.0] * 10, [30.0] + [0.0] * 9, [30.0, 40.0] + [0.0] * 8]
        # Steps of 0 (first position), 30 and 40
        assert analyzer.analyze_transaction_sequence(history).anomaly_score == pytest.approx(70 / 3 / 100)

    def test_steady_climb_is_suspicious(self):
        from fraud_ensemble.models.sequence_models import LSTMTimeSeriesAnalyzer, SequencePattern

        history = [[0.0] * 10, [100.0] + [0.0] * 9, [200.0] + [0.0] * 9]
        result = LSTMTimeSeriesAnalyzer(random_state=42).analyze_transaction_sequence(history)

        assert result.anomaly_score == pytest.approx(200 / 3 / 100)
        assert result.pattern == SequencePattern.SUSPICIOUS

    def test_classification_thresholds(self):
        from fraud_ensemble.models.sequence_models import LSTMTimeSeriesAnalyzer, SequencePattern

        assert LSTMTimeSeriesAnalyzer.classify(0.81) == SequencePattern.FRAUDULENT
        assert LSTMTimeSeriesAnalyzer.classify(0.8) == SequencePattern.SUSPICIOUS
        assert LSTMTimeSeriesAnalyzer.classify(0.51) == SequencePattern.SUSPICIOUS
        assert LSTMTimeSeriesAnalyzer.classify(0.5) == SequencePattern.NORMAL

    def test_erratic_history_is_fraudulent(self):
        from fraud_ensemble.models.sequence_models import LSTMTimeSeriesAnalyzer, SequencePattern

        history = [[0.0] * 10 if i % 2 else [100.0] * 10 for i in range(6)]
        result = LSTMTimeSeriesAnalyzer(random_state=42).analyze_transaction_sequence(history)

        assert result.anomaly_score == 1.0
        assert result.pattern == SequencePattern.FRAUDULENT

    def test_only_trailing_window_used(self):
        from fraud_ensemble.models.sequence_models import LSTMTimeSeriesAnalyzer

        analyzer = LSTMTimeSeriesAnalyzer(sequence_length=3, random_state=42)
        history = [[500.0] * 10] + [[1.0] * 10] * 3
        assert analyzer.analyze_transaction_sequence(history).anomaly_score == 0.0

    def test_seeded_prediction_is_reproducible(self):
        from fraud_ensemble.models.sequence_models import LSTMTimeSeriesAnalyzer

        history = [[float(i)] * 5 for i in range(5)]
        first = LSTMTimeSeriesAnalyzer(random_state=7).analyze_transaction_sequence(history)
        second = LSTMTimeSeriesAnalyzer(random_state=7).analyze_transaction_sequence(history)
        assert first.predicted_next == second.predicted_next


class TestGraphModel:
    """Test fraud ring detection."""

    @pytest.fixture
    def small_graph(self):
        from fraud_ensemble.models.graph_models import EdgeType, GraphEdge, GraphNode, NodeType

        nodes = [
            GraphNode(id='user_1', type=NodeType.USER, features=[0.8, 0.1, 0, 0, 0]),
            GraphNode(id='agent_1', type=NodeType.AGENT, features=[0.1, 0.5, 0, 0, 0]),
            GraphNode(id='device_1', type=NodeType.DEVICE, features=[0.2, 1.0, 0, 0, 0]),
        ]
        edges = [
            GraphEdge(source='user_1', target='agent_1', weight=0.9, type=EdgeType.TRANSACTION),
            GraphEdge(source='user_1', target='device_1', weight=0.9, type=EdgeType.DEVICE_USAGE),
        ]
        return nodes, edges, {'agent_1': 1, 'user_1': 1}

    def test_empty_graph_has_zero_risk(self):
        from fraud_ensemble.models.graph_models import GraphNeuralNetwork

        result = GraphNeuralNetwork(random_state=42).detect_fraud_ring([], [])
        assert result.risk_score == 0.0
        assert result.suspicious_nodes == []

    def test_only_heavy_transaction_edges_are_suspicious(self, small_graph):
        from fraud_ensemble.models.graph_models import EdgeType, GraphNeuralNetwork

        nodes, edges, labels = small_graph
        gnn = GraphNeuralNetwork(random_state=42).fit(nodes, edges, labels)
        result = gnn.detect_fraud_ring(nodes, edges)

        assert [edge.type for edge in result.connections] == [EdgeType.TRANSACTION]
        assert result.suspicious_nodes == []
        assert result.risk_score == pytest.approx(0.4 * 1 / 2)

    def test_large_embeddings_flag_nodes(self, small_graph):
        from fraud_ensemble.models.graph_models import GraphNeuralNetwork

        nodes, edges, labels = small_graph
        gnn = GraphNeuralNetwork(magnitude_normalizer=1e-6, random_state=42).fit(nodes, edges, labels)
        result = gnn.detect_fraud_ring(nodes, edges)

        assert set(result.suspicious_nodes) == {'user_1', 'agent_1', 'device_1'}
        assert result.risk_score == pytest.approx(0.6 + 0.2)

    def test_unseen_nodes_not_suspicious(self, small_graph):
        from fraud_ensemble.models.graph_models import GraphNeuralNetwork, GraphNode, NodeType

        nodes, edges, labels = small_graph
        gnn = GraphNeuralNetwork(magnitude_normalizer=1e-6, random_state=42).fit(nodes, edges, labels)
        stranger = GraphNode(id='user_99', type=NodeType.USER)

        assert gnn.node_anomaly_score('user_99') == 0.0
        assert gnn.detect_fraud_ring([stranger], []).risk_score == 0.0

    def test_detection_does_not_train(self, small_graph):
        from fraud_ensemble.models.graph_models import GraphNeuralNetwork

        nodes, edges, labels = small_graph
        gnn = GraphNeuralNetwork(random_state=42).fit(nodes, edges, labels)
        before = {k: v.copy() for k, v in gnn.node_embeddings.items()}
        gnn.detect_fraud_ring(nodes, edges)

        for node_id, embedding in before.items():
            np.testing.assert_array_equal(gnn.node_embeddings[node_id], embedding)

    def test_build_transaction_graph(self, fraud_payload):
        from fraud_ensemble.data.schema import Transaction
        from fraud_ensemble.models.graph_models import EdgeType, build_transaction_graph

        nodes, edges = build_transaction_graph(Transaction.from_dict(fraud_payload))

        assert [node.id for node in nodes] == ['user_42', 'agent_bad', 'dev_new']
        assert edges[0].type == EdgeType.AGENT_INTERACTION
        assert edges[0].weight == pytest.approx(0.9)
        assert edges[1].type == EdgeType.DEVICE_USAGE
        assert edges[1].weight == pytest.approx(0.8)
        assert set(nodes[0].connections) == {'agent_bad', 'dev_new'}

    def test_synthetic_graph_trains(self):
        from fraud_ensemble.data.synthetic import SyntheticDataGenerator
        from fraud_ensemble.models.graph_models import GraphNeuralNetwork

        nodes, edges, labels = SyntheticDataGenerator(random_state=42).generate_graph()
        gnn = GraphNeuralNetwork(random_state=42).fit(nodes, edges, labels)
        result = gnn.detect_fraud_ring(nodes, edges)

        assert gnn.is_fitted
        assert len(gnn.node_embeddings) == len(nodes)
        assert 0.0 <= result.risk_score <= 1.0


class TestSyntheticData:
    """Test the synthetic training data."""

    def test_shape_and_rate(self):
        from fraud_ensemble.data.synthetic import SyntheticDataGenerator

        X, y = SyntheticDataGenerator(random_state=42).generate(n_samples=1000, fraud_rate=0.3)

        assert isinstance(X, pd.DataFrame)
        assert list(X.columns) == FEATURE_NAMES
        assert len(y) == 1000
        assert 0.25 < y.mean() < 0.35
        assert not X.isna().any().any()
        assert X.values.min() >= 0.0 and X.values.max() <= 1.0

    def test_seeded(self):
        from fraud_ensemble.data.synthetic import SyntheticDataGenerator

        first, _ = SyntheticDataGenerator(random_state=3).generate(n_samples=50)
        second, _ = SyntheticDataGenerator(random_state=3).generate(n_samples=50)
        pd.testing.assert_frame_equal(first, second)
