"""
Models package for the fraud risk ensemble.

- Tree models (DecisionTree, GradientBoostingClassifier)
- Anomaly detection (AutoencoderAnomalyDetector)
- Sequence models (LSTMTimeSeriesAnalyzer)
- Graph models (GraphNeuralNetwork)
"""

# Tree models
from fraud_ensemble.models.tree_models import (
    DecisionTree,
    GradientBoostingClassifier
)

# Anomaly detection
from fraud_ensemble.models.anomaly_detection import (
    AnomalyResult,
    AutoencoderAnomalyDetector,
    DenseLayer
)

# Sequence models
from fraud_ensemble.models.sequence_models import (
    LSTMCell,
    LSTMTimeSeriesAnalyzer,
    SequenceAnalysis,
    SequencePattern
)

# Graph models
from fraud_ensemble.models.graph_models import (
    EdgeType,
    FraudRingResult,
    GraphEdge,
    GraphNeuralNetwork,
    GraphNode,
    NodeType,
    build_transaction_graph
)

__all__ = [
    # Tree models
    'DecisionTree',
    'GradientBoostingClassifier',

    # Anomaly detection
    'AnomalyResult',
    'AutoencoderAnomalyDetector',
    'DenseLayer',

    # Sequence models
    'LSTMCell',
    'LSTMTimeSeriesAnalyzer',
    'SequenceAnalysis',
    'SequencePattern',

    # Graph models
    'EdgeType',
    'FraudRingResult',
    'GraphEdge',
    'GraphNeuralNetwork',
    'GraphNode',
    'NodeType',
    'build_transaction_graph',
]
