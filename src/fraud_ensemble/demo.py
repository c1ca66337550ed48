"""
Fraud Risk Ensemble demo.

Trains the ensemble on synthetic data and scores a legitimate airtime
purchase and an account takeover cash-out.

Usage:
    fraud-ensemble-demo [--config config/engine_config.yaml] [--detailed]
"""

import argparse
import sys
from typing import Any, Dict, List, Optional

from loguru import logger

from fraud_ensemble.config import EngineConfig
from fraud_ensemble.engine.orchestrator import EnsembleOrchestrator


def sample_transactions() -> List[Dict[str, Any]]:
    """Two collaborator payloads: a routine purchase and an account takeover."""
    legitimate = {
        'id': 'txn_demo_legit',
        'amount': 75,
        'currency': 'KES',
        'timestamp': '2024-03-05T10:15:00Z',
        'type': 'airtime',
        'location': 'Westlands',
        'merchantCategory': 'telecom',
        'agentInfo': {'id': 'agent_021', 'trustScore': 0.8, 'location': 'Westlands'},
        'deviceFingerprint': {'deviceId': 'dev_8842', 'isNewDevice': False, 'trustScore': 0.9},
        'userProfile': {
            'userId': 'user_1001',
            'lastKnownLocation': 'Westlands',
            'riskProfile': 'low',
            'recentTransactions': [
                {'amount': 120, 'timestamp': '2024-03-01T09:40:00Z',
                 'merchantCategory': 'grocery', 'location': 'Westlands'},
                {'amount': 50, 'timestamp': '2024-03-02T17:05:00Z',
                 'merchantCategory': 'telecom', 'location': 'Westlands'},
            ],
        },
        'networkTrust': 0.9,
        'pinAttempts': 1,
    }
    takeover = {
        'id': 'txn_demo_takeover',
        'amount': 2000,
        'currency': 'KES',
        'timestamp': '2024-03-09T02:30:00Z',
        'type': 'cash_out',
        'location': 'Eastleigh',
        'merchantCategory': 'agent',
        'description': 'URGENT withdrawal for family emergency',
        'agentInfo': {'id': 'agent_666', 'trustScore': 0.1, 'location': 'Eastleigh'},
        'deviceFingerprint': {'deviceId': 'dev_0001', 'isNewDevice': True, 'trustScore': 0.1},
        'userProfile': {
            'userId': 'user_1001',
            'lastKnownLocation': 'Westlands',
            'riskProfile': 'medium',
            'recentTransactions': [],
        },
        'networkTrust': 0.3,
        'pinAttempts': 4,
    }
    return [legitimate, takeover]


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Score sample transactions with the fraud ensemble")
    parser.add_argument('--config', default=None, help="Path to engine YAML configuration")
    parser.add_argument('--detailed', action='store_true', help="Run every model (uncached path)")
    args = parser.parse_args(argv)

    engine = EnsembleOrchestrator(EngineConfig(args.config))
    engine.initialize()

    print("=" * 80)
    print("FRAUD RISK ENSEMBLE - DEMO")
    print("=" * 80)

    for payload in sample_transactions():
        if args.detailed:
            prediction = engine.predict_fraud_detailed(payload)
        else:
            prediction = engine.predict_fraud(payload)

        print(f"\n📊 {prediction.transaction_id}")
        print(f"   Risk score: {prediction.risk_score:.3f} ({prediction.risk_level.value})")
        print(f"   Confidence: {prediction.confidence:.2f}")
        print(f"   Action: {prediction.recommended_action}")
        for pattern in prediction.detected_patterns:
            print(f"   ⚠️  {pattern.type} ({pattern.confidence:.0%})")
        print()
        print(prediction.explanation)

    metrics = engine.get_model_metrics()
    print("=" * 80)
    print(f"Training accuracy: {metrics['accuracy']:.3f}  AUC: {metrics['auc']:.3f}")
    print(f"Training samples: {metrics['training_data_size']}")
    print("=" * 80)

    logger.info("Demo completed")
    return 0


if __name__ == '__main__':
    sys.exit(main())
