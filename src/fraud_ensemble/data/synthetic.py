"""
Synthetic Mobile Money Training Data

Generates labelled feature records for bootstrapping the ensemble when no
historical data is available. Legitimate activity is drawn from daytime,
trusted-device, low-velocity distributions. Fraud is a mixture of four
archetypes (SIM swap, account takeover, agent collusion, investment scam),
each extreme on its own signals and only moderately shifted on the rest,
so no single feature separates the classes.

Also generates a small user / agent / device graph with planted fraud rings
for the graph model.

Example:
    >>> from fraud_ensemble.data.synthetic import SyntheticDataGenerator
    >>> generator = SyntheticDataGenerator(random_state=42)
    >>> features, labels = generator.generate(n_samples=1000, fraud_rate=0.3)
    >>> features.shape
    (1000, 14)
"""

from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from loguru import logger

from fraud_ensemble.features.transaction_features import FEATURE_NAMES
from fraud_ensemble.models.graph_models import EdgeType, GraphEdge, GraphNode, NodeType

FRAUD_ARCHETYPES = ('sim_swap', 'account_takeover', 'agent_collusion', 'investment_scam')


class SyntheticDataGenerator:
    """Seeded generator of synthetic training data."""

    def __init__(self, random_state: Optional[int] = None):
        """
        Initialize generator.

        Args:
            random_state: Random seed
        """
        self.random_state = random_state
        self.rng = np.random.default_rng(random_state)

    def generate(self, n_samples: int = 1000, fraud_rate: float = 0.3) -> Tuple[pd.DataFrame, pd.Series]:
        """
        Generate labelled feature records.

        Args:
            n_samples: Number of records
            fraud_rate: Expected share of fraudulent records

        Returns:
            (features DataFrame with FEATURE_NAMES columns, labels Series)
        """
        labels = (self.rng.random(n_samples) < fraud_rate).astype(int)
        n_fraud = int(labels.sum())

        normal = self._normal(n_samples - n_fraud)
        fraud = self._fraud(n_fraud)

        features = pd.DataFrame(index=range(n_samples), columns=FEATURE_NAMES, dtype=float)
        features.loc[labels == 0, FEATURE_NAMES] = normal[FEATURE_NAMES].values
        features.loc[labels == 1, FEATURE_NAMES] = fraud[FEATURE_NAMES].values

        logger.info(
            f"Generated {n_samples} synthetic transactions "
            f"({n_fraud} fraudulent, {n_fraud / max(n_samples, 1):.1%})"
        )
        return features, pd.Series(labels, name='is_fraud')

    def _uniform(self, low: float, high: float, size: int) -> np.ndarray:
        return self.rng.uniform(low, high, size)

    def _choice(self, values: List[float], probs: List[float], size: int) -> np.ndarray:
        return self.rng.choice(values, size=size, p=probs)

    def _normal(self, n: int) -> pd.DataFrame:
        daytime = self._uniform(0.3, 0.9, n)
        any_time = self._uniform(0.0, 1.0, n)
        return pd.DataFrame({
            'amount': self._uniform(0.1, 0.5, n),
            'hour': np.where(self.rng.random(n) < 0.9, daytime, any_time),
            'day_of_week': self._choice([i / 7 for i in range(7)], [1 / 7] * 7, n),
            'velocity_score': self._uniform(0.0, 0.4, n),
            'frequency_score': self._uniform(0.0, 0.5, n),
            'device_trust': self._uniform(0.6, 1.0, n),
            'new_device': (self.rng.random(n) < 0.05).astype(float),
            'location_change': self._choice([0.1, 0.5, 0.8], [0.8, 0.12, 0.08], n),
            'agent_trust': self._uniform(0.6, 1.0, n),
            'network_trust': self._uniform(0.4, 1.0, n),
            'pin_attempts': self._choice([0.2, 0.4, 0.6], [0.85, 0.12, 0.03], n),
            'user_risk_profile': self._choice([0.2, 0.5, 0.8], [0.5, 0.4, 0.1], n),
            'transaction_pattern': self._choice([0.5, 0.6, 0.7, 0.8, 0.9], [0.6, 0.1, 0.2, 0.05, 0.05], n),
            'merchant_category': self._choice(
                [0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7],
                [0.2, 0.35, 0.15, 0.1, 0.05, 0.1, 0.05],
                n
            ),
        })

    def _fraud(self, n: int) -> pd.DataFrame:
        # Moderately shifted base shared by all archetypes.
        night = self._uniform(0.0, 0.25, n)
        any_time = self._uniform(0.0, 1.0, n)
        base = pd.DataFrame({
            'amount': self._uniform(0.4, 1.0, n),
            'hour': np.where(self.rng.random(n) < 0.5, night, any_time),
            'day_of_week': self._choice([i / 7 for i in range(7)], [1 / 7] * 7, n),
            'velocity_score': self._uniform(0.0, 0.8, n),
            'frequency_score': self._uniform(0.0, 0.9, n),
            'device_trust': self._uniform(0.3, 0.9, n),
            'new_device': (self.rng.random(n) < 0.4).astype(float),
            'location_change': self._choice([0.1, 0.5, 0.8], [0.3, 0.2, 0.5], n),
            'agent_trust': self._uniform(0.3, 0.9, n),
            'network_trust': self._uniform(0.1, 0.8, n),
            'pin_attempts': self._choice([0.2, 0.4, 0.6, 0.8], [0.4, 0.3, 0.2, 0.1], n),
            'user_risk_profile': self._choice([0.2, 0.5, 0.8], [0.2, 0.4, 0.4], n),
            'transaction_pattern': self._choice([0.5, 0.7, 0.8, 0.9, 1.0], [0.2, 0.3, 0.2, 0.2, 0.1], n),
            'merchant_category': self._choice([0.3, 0.5, 0.6, 0.7, 0.8, 0.9], [0.1, 0.2, 0.2, 0.3, 0.1, 0.1], n),
        })

        archetype = self.rng.choice(len(FRAUD_ARCHETYPES), size=n)

        sim_swap = archetype == 0
        k = int(sim_swap.sum())
        base.loc[sim_swap, 'new_device'] = 1.0
        base.loc[sim_swap, 'location_change'] = 0.8
        base.loc[sim_swap, 'velocity_score'] = self._uniform(0.7, 1.0, k)
        base.loc[sim_swap, 'device_trust'] = self._uniform(0.1, 0.5, k)

        takeover = archetype == 1
        k = int(takeover.sum())
        base.loc[takeover, 'pin_attempts'] = self._choice([0.6, 0.8, 1.0], [0.3, 0.4, 0.3], k)
        base.loc[takeover, 'device_trust'] = self._uniform(0.0, 0.3, k)
        base.loc[takeover, 'new_device'] = (self.rng.random(k) < 0.7).astype(float)

        collusion = archetype == 2
        k = int(collusion.sum())
        base.loc[collusion, 'agent_trust'] = self._uniform(0.0, 0.3, k)
        base.loc[collusion, 'network_trust'] = self._uniform(0.0, 0.4, k)
        base.loc[collusion, 'merchant_category'] = self._choice([0.6, 0.7], [0.5, 0.5], k)

        scam = archetype == 3
        k = int(scam.sum())
        base.loc[scam, 'merchant_category'] = self._choice([0.8, 0.9], [0.5, 0.5], k)
        base.loc[scam, 'user_risk_profile'] = 0.8
        base.loc[scam, 'frequency_score'] = self._uniform(0.5, 1.0, k)

        return base

    def generate_graph(
        self,
        n_users: int = 40,
        n_agents: int = 8,
        n_rings: int = 2
    ) -> Tuple[List[GraphNode], List[GraphEdge], Dict[str, int]]:
        """
        Generate a user / agent / device graph with planted fraud rings.

        Ring agents are linked to their users with heavy transaction edges and
        share devices among them.

        Returns:
            (nodes, edges, labels by node id)
        """
        nodes: List[GraphNode] = []
        edges: List[GraphEdge] = []
        labels: Dict[str, int] = {}

        ring_agents = set(range(min(n_rings, n_agents)))
        for a in range(n_agents):
            fraudulent = a in ring_agents
            trust = self._uniform(0.0, 0.3, 1)[0] if fraudulent else self._uniform(0.6, 1.0, 1)[0]
            nodes.append(GraphNode(
                id=f'agent_{a:03d}',
                type=NodeType.AGENT,
                features=[float(trust), float(self.rng.random()), 0.0, 0.0, 0.0]
            ))
            labels[f'agent_{a:03d}'] = int(fraudulent)

        for u in range(n_users):
            user_id = f'user_{u:04d}'
            agent = int(self.rng.integers(n_agents))
            fraudulent = agent in ring_agents and self.rng.random() < 0.7
            device_id = f'device_ring_{agent:03d}' if fraudulent else f'device_{u:04d}'

            nodes.append(GraphNode(
                id=user_id,
                type=NodeType.USER,
                features=[0.8 if fraudulent else 0.2, float(self.rng.random()), 0.0, 0.0, 0.0]
            ))
            labels[user_id] = int(fraudulent)

            edges.append(GraphEdge(
                source=user_id,
                target=f'agent_{agent:03d}',
                weight=float(self._uniform(0.8, 1.0, 1)[0] if fraudulent else self._uniform(0.0, 0.5, 1)[0]),
                type=EdgeType.TRANSACTION
            ))
            edges.append(GraphEdge(
                source=user_id,
                target=device_id,
                weight=0.8 if fraudulent else 0.2,
                type=EdgeType.DEVICE_USAGE
            ))

        known = {node.id for node in nodes}
        for edge in edges:
            if edge.target not in known:
                shared = edge.target.startswith('device_ring_')
                nodes.append(GraphNode(
                    id=edge.target,
                    type=NodeType.DEVICE,
                    features=[0.2 if shared else 0.8, 1.0 if shared else 0.0, 0.0, 0.0, 0.0]
                ))
                labels[edge.target] = int(shared)
                known.add(edge.target)

        for edge in edges:
            for node in nodes:
                if node.id == edge.source:
                    node.connections.append(edge.target)
                elif node.id == edge.target:
                    node.connections.append(edge.source)

        logger.info(f"Generated synthetic graph with {len(nodes)} nodes and {len(edges)} edges")
        return nodes, edges, labels
