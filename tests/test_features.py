"""
Test suite for the data and feature layers.

Tests transaction parsing and feature extraction defaults and windows.
"""

import math

import numpy as np
import pytest

from fraud_ensemble.data.schema import Transaction, TransactionType, parse_timestamp
from fraud_ensemble.features.transaction_features import (
    AUTOENCODER_FEATURES,
    FEATURE_NAMES,
    FeatureExtractor,
    MLFeatures,
    encode_merchant_category,
    features_to_matrix,
    js_weekday,
)


def _transaction(**overrides):
    payload = {
        'id': 'txn_test',
        'amount': 100,
        'type': 'send_money',
        'timestamp': '2024-03-10T12:00:00Z',
    }
    payload.update(overrides)
    return Transaction.from_dict(payload)


def _with_history(recent, timestamp='2024-03-10T12:00:00Z'):
    return _transaction(
        timestamp=timestamp,
        userProfile={
            'userId': 'user_1',
            'lastKnownLocation': 'Westlands',
            'recentTransactions': recent,
        }
    )


class TestSchema:
    """Test transaction records."""

    def test_from_camel_case_payload(self, fraud_payload):
        txn = Transaction.from_dict(fraud_payload)

        assert txn.type == TransactionType.CASH_OUT
        assert txn.device_fingerprint.is_new_device is True
        assert txn.device_fingerprint.trust_score == pytest.approx(0.1)
        assert txn.agent_info.trust_score == pytest.approx(0.1)
        assert txn.user_profile.last_known_location == 'Westlands'
        assert txn.user_profile.recent_transactions == ()
        assert txn.pin_attempts == 4
        assert txn.currency == 'KES'

    def test_snake_case_payload(self):
        txn = Transaction.from_dict({
            'id': 't', 'amount': 10, 'type': 'bill_payment',
            'timestamp': '2024-03-10T12:00:00Z',
            'merchant_category': 'utilities',
            'network_trust': 0.7,
        })
        assert txn.merchant_category == 'utilities'
        assert txn.network_trust == pytest.approx(0.7)

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            _transaction(type='teleport')

    def test_parse_timestamp_keeps_wall_clock(self):
        moment = parse_timestamp('2024-03-05T10:15:00Z')
        assert moment.hour == 10
        assert moment.minute == 15
        assert moment.utcoffset().total_seconds() == 0


class TestFeatureExtractor:
    """Test feature extraction."""

    def test_legit_transaction_features(self, legit_payload):
        features = FeatureExtractor().extract(Transaction.from_dict(legit_payload))

        assert features.amount == pytest.approx(math.log(76) / 10)
        assert features.hour == pytest.approx(10 / 24)
        assert features.day_of_week == pytest.approx(2 / 7)  # Tuesday
        assert features.velocity_score == 0.0
        assert features.frequency_score == 0.0
        assert features.device_trust == pytest.approx(0.9)
        assert features.new_device == 0.0
        assert features.location_change == pytest.approx(0.1)
        assert features.agent_trust == pytest.approx(0.8)
        assert features.network_trust == pytest.approx(0.9)
        assert features.pin_attempts == pytest.approx(0.2)
        assert features.user_risk_profile == pytest.approx(0.2)
        assert features.transaction_pattern == pytest.approx(0.5)
        assert features.merchant_category == pytest.approx(0.2)

    def test_fraud_transaction_features(self, fraud_payload):
        features = FeatureExtractor().extract(Transaction.from_dict(fraud_payload))

        assert features.day_of_week == pytest.approx(6 / 7)  # Saturday
        assert features.new_device == 1.0
        assert features.location_change == pytest.approx(0.8)
        assert features.pin_attempts == pytest.approx(0.8)
        # Off-hours, weekend and a large amount
        assert features.transaction_pattern == pytest.approx(1.0)
        assert features.merchant_category == pytest.approx(0.7)

    def test_missing_fields_defaulted(self):
        features = FeatureExtractor().extract(_transaction())

        assert features.day_of_week == 0.0  # Sunday
        assert features.device_trust == 0.5
        assert features.new_device == 0.0
        assert features.agent_trust == 0.5
        assert features.network_trust == 0.5
        assert features.location_change == 0.5
        assert features.user_risk_profile == 0.5
        assert features.pin_attempts == pytest.approx(0.2)
        assert features.merchant_category == pytest.approx(0.7)
        assert features.transaction_pattern == pytest.approx(0.6)

    def test_zero_network_trust_is_kept(self):
        features = FeatureExtractor().extract(_transaction(networkTrust=0.0))
        assert features.network_trust == 0.0

    def test_pin_attempts_clamped(self):
        extractor = FeatureExtractor()
        assert extractor.extract(_transaction(pinAttempts=0)).pin_attempts == pytest.approx(0.2)
        assert extractor.extract(_transaction(pinAttempts=10)).pin_attempts == 1.0

    def test_merchant_category_encoding(self):
        assert encode_merchant_category('lottery') == pytest.approx(0.9)
        assert encode_merchant_category(None) == pytest.approx(0.7)
        assert encode_merchant_category('spaceship') == pytest.approx(0.5)

    def test_velocity_uses_transaction_time(self):
        txn = _with_history([
            {'amount': 500, 'timestamp': '2024-03-10T11:30:00Z'},
            {'amount': 300, 'timestamp': '2024-03-10T11:45:00Z'},
            {'amount': 2400, 'timestamp': '2024-03-09T13:00:00Z'},
        ])
        # 800 in the last hour dominates the longer windows
        assert FeatureExtractor().velocity_score(txn) == pytest.approx(0.8)

    def test_velocity_capped(self):
        txn = _with_history([{'amount': 5000, 'timestamp': '2024-03-10T11:50:00Z'}])
        assert FeatureExtractor().velocity_score(txn) == 1.0

    def test_frequency_counts_last_day(self):
        recent = [
            {'amount': 10, 'timestamp': f'2024-03-10T0{hour}:00:00Z'} for hour in range(5)
        ]
        recent.append({'amount': 10, 'timestamp': '2024-03-09T11:00:00Z'})
        txn = _with_history(recent)
        assert FeatureExtractor().frequency_score(txn) == pytest.approx(5 / 20)

    def test_js_weekday(self):
        assert js_weekday(parse_timestamp('2024-03-10T12:00:00Z')) == 0
        assert js_weekday(parse_timestamp('2024-03-11T12:00:00Z')) == 1
        assert js_weekday(parse_timestamp('2024-03-16T12:00:00Z')) == 6


class TestTransactionHistory:
    """Test history vectors for the sequence analyzer."""

    def test_history_window_and_padding(self):
        recent = [
            {'amount': 100 + i, 'timestamp': f'2024-03-0{1 + i % 9}T1{i % 10}:00:00Z',
             'merchantCategory': 'grocery', 'location': 'Westlands'}
            for i in range(12)
        ]
        history = FeatureExtractor().transaction_history(_with_history(recent))

        assert len(history) == 10
        assert all(len(vector) == 10 for vector in history)
        # Oldest two dropped
        assert history[0][0] == pytest.approx(math.log(103))
        assert history[0][3] == pytest.approx(0.1)
        assert history[0][4] == 0.0
        assert history[0][5:] == [0.0] * 5

    def test_location_mismatch_flag(self):
        history = FeatureExtractor().transaction_history(_with_history([
            {'amount': 50, 'timestamp': '2024-03-09T08:00:00Z', 'location': 'Kisumu'}
        ]))
        assert history[0][1] == 8.0
        assert history[0][4] == 1.0

    def test_no_profile_gives_empty_history(self):
        assert FeatureExtractor().transaction_history(_transaction()) == []


class TestMLFeatures:
    """Test the feature record."""

    def test_array_order_and_views(self, legit_payload):
        features = FeatureExtractor().extract(Transaction.from_dict(legit_payload))
        array = features.to_array()

        assert array.shape == (14,)
        assert list(features.to_dict()) == FEATURE_NAMES
        assert array[FEATURE_NAMES.index('device_trust')] == pytest.approx(0.9)

        view = features.autoencoder_view()
        assert view.shape == (12,)
        assert 'user_risk_profile' not in AUTOENCODER_FEATURES
        assert 'transaction_pattern' not in AUTOENCODER_FEATURES
        assert view[-1] == pytest.approx(features.merchant_category)

    def test_replace_and_from_array(self):
        features = MLFeatures.from_array(np.linspace(0, 1, 14))
        changed = features.replace(amount=0.99)

        assert changed.amount == 0.99
        assert features.amount == 0.0
        assert changed.hour == features.hour

        with pytest.raises(ValueError):
            MLFeatures.from_array([0.1, 0.2])

    def test_features_to_matrix(self):
        rows = [MLFeatures.from_array(np.full(14, v)) for v in (0.1, 0.2, 0.3)]
        assert features_to_matrix(rows).shape == (3, 14)
        assert features_to_matrix([]).shape == (0, 14)
