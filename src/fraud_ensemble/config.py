"""
Engine Configuration

Loads the risk engine configuration from an optional YAML file. Every section
maps onto a dataclass whose defaults reproduce the production values, so an
empty or missing file yields a fully working engine.

Example:
    >>> from fraud_ensemble.config import EngineConfig
    >>> config = EngineConfig(config_path='config/engine_config.yaml')
    >>> config.gradient_boosting.learning_rate
    0.5
"""

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from loguru import logger


@dataclass
class GradientBoostingConfig:
    """Hyperparameters of the boosted tree classifier."""
    learning_rate: float = 0.5
    max_depth: int = 4
    n_estimators: int = 100
    max_boosting_rounds: int = 80
    tree_depth_cap: int = 3
    base_score: float = 0.0


@dataclass
class AutoencoderConfig:
    """Hyperparameters of the reconstruction-error detector."""
    input_size: int = 12
    hidden_size: int = 8
    learning_rate: float = 0.05
    epochs: int = 150
    anomaly_threshold: float = 0.1
    max_training_samples: int = 200


@dataclass
class LSTMConfig:
    """Hyperparameters of the sequence analyzer."""
    input_size: int = 10
    hidden_size: int = 16
    sequence_length: int = 5
    history_window: int = 10
    distance_normalizer: float = 100.0


@dataclass
class GraphConfig:
    """Hyperparameters of the fraud ring detector."""
    embedding_size: int = 16
    learning_rate: float = 0.01
    epochs: int = 10
    node_threshold: float = 0.7
    edge_threshold: float = 0.8
    magnitude_normalizer: float = 10.0


@dataclass
class SHAPConfig:
    """Monte-Carlo Shapley settings."""
    n_samples: int = 100
    top_k: int = 3


@dataclass
class FusionWeights:
    """Fixed weights of the score fusion."""
    xgboost: float = 0.4
    anomaly: float = 0.25
    lstm: float = 0.2
    graph: float = 0.15


@dataclass
class OrchestratorConfig:
    """Engine level settings."""
    synthetic_samples: int = 1000
    fraud_rate: float = 0.3
    cache_size: int = 100
    fraud_threshold: float = 0.7
    fast_path_lstm_score: float = 0.3
    fast_path_graph_score: float = 0.2
    weights: FusionWeights = field(default_factory=FusionWeights)


def _build_section(cls, values: Optional[Dict[str, Any]]):
    """Instantiate a config dataclass, ignoring unknown keys."""
    values = values or {}
    known = {f.name for f in fields(cls)}
    unknown = set(values) - known
    if unknown:
        logger.warning(f"Ignoring unknown {cls.__name__} keys: {sorted(unknown)}")
    return cls(**{k: v for k, v in values.items() if k in known})


class EngineConfig:
    """Configuration for the fraud risk ensemble."""

    def __init__(
        self,
        config_path: Optional[Union[str, Path]] = None,
        overrides: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize engine configuration.

        Args:
            config_path: Path to YAML configuration file
            overrides: Nested dictionary applied on top of the file contents
        """
        config: Dict[str, Any] = {}
        if config_path and Path(config_path).exists():
            with open(config_path, 'r') as f:
                config = yaml.safe_load(f) or {}
            logger.info(f"Loaded engine configuration from {config_path}")
        elif config_path:
            logger.warning(f"Config file {config_path} not found, using defaults")

        for section, values in (overrides or {}).items():
            if isinstance(values, dict):
                config.setdefault(section, {}).update(values)
            else:
                config[section] = values

        self.random_state: int = config.get('random_state', 42)
        self.gradient_boosting = _build_section(
            GradientBoostingConfig, config.get('gradient_boosting')
        )
        self.autoencoder = _build_section(AutoencoderConfig, config.get('autoencoder'))
        self.lstm = _build_section(LSTMConfig, config.get('lstm'))
        self.graph = _build_section(GraphConfig, config.get('graph'))
        self.shap = _build_section(SHAPConfig, config.get('shap'))

        engine = dict(config.get('engine') or {})
        weights = _build_section(FusionWeights, engine.pop('weights', None))
        self.engine = _build_section(OrchestratorConfig, engine)
        self.engine.weights = weights

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'random_state': self.random_state,
            'gradient_boosting': asdict(self.gradient_boosting),
            'autoencoder': asdict(self.autoencoder),
            'lstm': asdict(self.lstm),
            'graph': asdict(self.graph),
            'shap': asdict(self.shap),
            'engine': asdict(self.engine),
        }
