"""Shared fixtures for the fraud ensemble test suite."""

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT / 'src'))

from fraud_ensemble.config import EngineConfig  # noqa: E402
from fraud_ensemble.engine.orchestrator import EnsembleOrchestrator  # noqa: E402

CONFIG_PATH = ROOT / 'config' / 'engine_config.yaml'


@pytest.fixture(scope='session')
def config_path():
    return CONFIG_PATH


@pytest.fixture(scope='session')
def trained_engine():
    """Engine trained once on the shipped configuration."""
    engine = EnsembleOrchestrator(EngineConfig(CONFIG_PATH))
    engine.initialize()
    return engine


@pytest.fixture
def small_engine():
    """Freshly trained engine on a small synthetic set, safe to mutate."""
    config = EngineConfig(overrides={
        'engine': {'synthetic_samples': 300},
        'shap': {'n_samples': 20},
    })
    engine = EnsembleOrchestrator(config)
    engine.initialize()
    return engine


@pytest.fixture
def fraud_payload():
    """Account takeover cash-out: new untrusted device, bad agent, 4 PIN attempts, at night."""
    return {
        'id': 'txn_fraud_001',
        'amount': 2000,
        'type': 'cash_out',
        'timestamp': '2024-03-09T02:30:00Z',
        'location': 'Eastleigh',
        'deviceFingerprint': {'deviceId': 'dev_new', 'isNewDevice': True, 'trustScore': 0.1},
        'agentInfo': {'id': 'agent_bad', 'trustScore': 0.1, 'location': 'Eastleigh'},
        'userProfile': {
            'userId': 'user_42',
            'lastKnownLocation': 'Westlands',
            'recentTransactions': [],
            'riskProfile': 'medium',
        },
        'networkTrust': 0.3,
        'pinAttempts': 4,
    }


@pytest.fixture
def legit_payload():
    """Routine daytime airtime top-up from a trusted device at the usual location."""
    return {
        'id': 'txn_legit_001',
        'amount': 75,
        'type': 'airtime',
        'timestamp': '2024-03-05T10:15:00Z',
        'location': 'Westlands',
        'merchantCategory': 'telecom',
        'deviceFingerprint': {'deviceId': 'dev_home', 'isNewDevice': False, 'trustScore': 0.9},
        'agentInfo': {'id': 'agent_good', 'trustScore': 0.8, 'location': 'Westlands'},
        'userProfile': {
            'userId': 'user_7',
            'lastKnownLocation': 'Westlands',
            'recentTransactions': [
                {'amount': 120, 'timestamp': '2024-03-01T09:40:00Z',
                 'merchantCategory': 'grocery', 'location': 'Westlands'},
            ],
            'riskProfile': 'low',
        },
        'networkTrust': 0.9,
        'pinAttempts': 1,
    }
