#!/usr/bin/env python3
"""
Quick Demo: Fraud Risk Ensemble

Scores two sample transactions from a source checkout.
Note: Requires dependencies to be installed (pip install -r requirements.txt)
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / 'src'))

from fraud_ensemble.demo import main  # noqa: E402

if __name__ == '__main__':
    config_path = Path(__file__).parent / 'config' / 'engine_config.yaml'
    sys.exit(main(['--config', str(config_path)] + sys.argv[1:]))
