"""
Graph Models for Fraud Ring Detection

Node-embedding propagation over a user / agent / device graph:
- GraphNode and GraphEdge records
- GraphNeuralNetwork: mean-aggregation message passing with a simplified
  logistic loss, and fraud ring scoring from embedding magnitudes and
  remembered edge weights
- build_transaction_graph: graph of a single transaction's entities

Example:
    >>> from fraud_ensemble.models.graph_models import GraphNeuralNetwork, build_transaction_graph
    >>> gnn = GraphNeuralNetwork(embedding_size=16, random_state=42)
    >>> gnn.fit(nodes, edges, labels)
    >>> nodes, edges = build_transaction_graph(transaction)
    >>> result = gnn.detect_fraud_ring(nodes, edges)
    >>> result.risk_score
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import networkx as nx
import numpy as np
from loguru import logger
from scipy.special import expit

from fraud_ensemble.data.schema import Transaction
from fraud_ensemble.features.transaction_features import map_risk_profile


class NodeType(str, Enum):
    USER = "user"
    AGENT = "agent"
    DEVICE = "device"
    TRANSACTION = "transaction"


class EdgeType(str, Enum):
    TRANSACTION = "transaction"
    DEVICE_USAGE = "device_usage"
    AGENT_INTERACTION = "agent_interaction"


@dataclass
class GraphNode:
    """Entity in the transaction graph."""
    id: str
    type: NodeType
    features: List[float] = field(default_factory=list)
    connections: List[str] = field(default_factory=list)


@dataclass
class GraphEdge:
    """Weighted relation between two entities."""
    source: str
    target: str
    weight: float
    type: EdgeType

    @property
    def key(self) -> str:
        return f"{self.source}-{self.target}"


@dataclass(frozen=True)
class FraudRingResult:
    """Outcome of fraud ring detection."""
    suspicious_nodes: List[str]
    risk_score: float
    connections: List[GraphEdge]


class GraphNeuralNetwork:
    """
    Fraud ring detector based on propagated node embeddings.

    A node is suspicious when ``min(||embedding|| / magnitude_normalizer, 1)``
    exceeds ``node_threshold``; a transaction edge is suspicious when its
    remembered weight exceeds ``edge_threshold``.

    Example:
        >>> gnn = GraphNeuralNetwork(embedding_size=16, epochs=10)
        >>> gnn.fit(nodes, edges, {'agent_7': 1})
    """

    def __init__(
        self,
        embedding_size: int = 16,
        learning_rate: float = 0.01,
        epochs: int = 10,
        node_threshold: float = 0.7,
        edge_threshold: float = 0.8,
        magnitude_normalizer: float = 10.0,
        random_state: Optional[int] = None
    ):
        """
        Initialize graph model.

        Args:
            embedding_size: Dimension of node embeddings
            learning_rate: Step size of the embedding updates
            epochs: Message passing rounds during training
            node_threshold: Node anomaly score above which a node is suspicious
            edge_threshold: Edge weight above which a transaction edge is suspicious
            magnitude_normalizer: Divisor mapping embedding norms to [0, 1]
            random_state: Random seed for embedding initialization
        """
        self.embedding_size = embedding_size
        self.learning_rate = learning_rate
        self.epochs = epochs
        self.node_threshold = node_threshold
        self.edge_threshold = edge_threshold
        self.magnitude_normalizer = magnitude_normalizer
        self.random_state = random_state

        self.node_embeddings: Dict[str, np.ndarray] = {}
        self.edge_weights: Dict[str, float] = {}
        self.is_fitted = False

        logger.info("Initialized GraphNeuralNetwork")

    def fit(
        self,
        nodes: Sequence[GraphNode],
        edges: Sequence[GraphEdge],
        labels: Mapping[str, int]
    ) -> 'GraphNeuralNetwork':
        """
        Learn node embeddings by message passing.

        Args:
            nodes: Graph nodes
            edges: Graph edges
            labels: Fraud label per node id (missing ids count as 0)

        Returns:
            Self
        """
        logger.info(f"Fitting graph model on {len(nodes)} nodes and {len(edges)} edges")

        rng = np.random.default_rng(self.random_state)
        embeddings = {
            node.id: (rng.random(self.embedding_size) - 0.5) * 0.1 for node in nodes
        }
        graph = self._build_graph(nodes, edges)

        for _ in range(self.epochs):
            updated = {}
            for node in nodes:
                neighbors = self._neighbors(graph, node.id)
                aggregated = self._aggregate(neighbors, embeddings)
                updated[node.id] = self._update_embedding(
                    embeddings[node.id], aggregated, node.features, labels.get(node.id, 0)
                )
            embeddings = updated

        self.node_embeddings = embeddings
        self.edge_weights = {edge.key: edge.weight for edge in edges}
        self.is_fitted = True

        logger.info("Graph model fitting completed")
        return self

    train = fit

    def detect_fraud_ring(
        self,
        nodes: Sequence[GraphNode],
        edges: Sequence[GraphEdge]
    ) -> FraudRingResult:
        """
        Score a graph against the learned embeddings without training.

        Args:
            nodes: Graph nodes
            edges: Graph edges

        Returns:
            FraudRingResult
        """
        suspicious_nodes = [
            node.id for node in nodes
            if node.id in self.node_embeddings
            and self.node_anomaly_score(node.id) > self.node_threshold
        ]
        suspicious_edges = [
            edge for edge in edges
            if edge.type == EdgeType.TRANSACTION
            and self.edge_weights.get(edge.key, 0.0) > self.edge_threshold
        ]

        node_ratio = len(suspicious_nodes) / len(nodes) if nodes else 0.0
        edge_ratio = len(suspicious_edges) / len(edges) if edges else 0.0

        return FraudRingResult(
            suspicious_nodes=suspicious_nodes,
            risk_score=min(0.6 * node_ratio + 0.4 * edge_ratio, 1.0),
            connections=suspicious_edges
        )

    def node_anomaly_score(self, node_id: str) -> float:
        """Embedding magnitude mapped to [0, 1]; 0 for unseen nodes."""
        embedding = self.node_embeddings.get(node_id)
        if embedding is None:
            return 0.0
        return float(min(np.linalg.norm(embedding) / self.magnitude_normalizer, 1.0))

    @staticmethod
    def _build_graph(nodes: Sequence[GraphNode], edges: Sequence[GraphEdge]) -> nx.MultiGraph:
        graph = nx.MultiGraph()
        graph.add_nodes_from(node.id for node in nodes)
        for edge in edges:
            graph.add_edge(edge.source, edge.target, weight=edge.weight, type=edge.type)
        return graph

    @staticmethod
    def _neighbors(graph: nx.MultiGraph, node_id: str) -> List[str]:
        """One entry per incident edge, so parallel edges count twice."""
        return [other for _, other in graph.edges(node_id)]

    def _aggregate(self, neighbors: List[str], embeddings: Mapping[str, np.ndarray]) -> np.ndarray:
        aggregated = np.zeros(self.embedding_size)
        if not neighbors:
            return aggregated
        for neighbor in neighbors:
            embedding = embeddings.get(neighbor)
            if embedding is not None:
                aggregated += embedding
        return aggregated / len(neighbors)

    def _update_embedding(
        self,
        current: np.ndarray,
        aggregated: np.ndarray,
        features: Sequence[float],
        label: int
    ) -> np.ndarray:
        padded = np.zeros(self.embedding_size)
        values = np.asarray(features, dtype=float)[:self.embedding_size]
        padded[:len(values)] = values

        prediction = expit(np.clip(current + aggregated + padded, -500, 500))
        gradient = (prediction - label) * prediction * (1 - prediction)
        return current - self.learning_rate * gradient


def build_transaction_graph(transaction: Transaction) -> Tuple[List[GraphNode], List[GraphEdge]]:
    """
    Build the user / agent / device graph of one transaction.

    Args:
        transaction: Transaction being scored

    Returns:
        (nodes, edges)
    """
    profile = transaction.user_profile
    user_id = profile.user_id if profile else 'unknown_user'
    recent = profile.recent_transactions if profile else ()

    user = GraphNode(
        id=user_id,
        type=NodeType.USER,
        features=[
            map_risk_profile(profile.risk_profile if profile else None),
            len(recent) / 100,
            0.0, 0.0, 0.0
        ]
    )
    nodes = [user]
    edges: List[GraphEdge] = []

    agent = transaction.agent_info
    if agent:
        # Share of the user's recent activity at this agent's location.
        activity = (
            sum(1 for t in recent if agent.location and t.location == agent.location) / len(recent)
            if recent else 0.0
        )
        nodes.append(GraphNode(
            id=agent.id,
            type=NodeType.AGENT,
            features=[agent.trust_score, activity, 0.0, 0.0, 0.0]
        ))
        edges.append(GraphEdge(
            source=user_id,
            target=agent.id,
            weight=1 - agent.trust_score,
            type=EdgeType.AGENT_INTERACTION
        ))

    device = transaction.device_fingerprint
    if device:
        nodes.append(GraphNode(
            id=device.device_id,
            type=NodeType.DEVICE,
            features=[device.trust_score, 1.0 if device.is_new_device else 0.0, 0.0, 0.0, 0.0]
        ))
        edges.append(GraphEdge(
            source=user_id,
            target=device.device_id,
            weight=0.8 if device.is_new_device else 0.2,
            type=EdgeType.DEVICE_USAGE
        ))

    for edge in edges:
        user.connections.append(edge.target)
        for node in nodes:
            if node.id == edge.target:
                node.connections.append(user_id)

    return nodes, edges
