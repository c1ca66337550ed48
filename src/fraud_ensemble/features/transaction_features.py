"""
Transaction Feature Extraction

Turns a Transaction into the fixed-order numeric feature record shared by all
models of the ensemble:
- Transaction features (log amount, hour, day of week)
- Velocity and frequency over the user's recent transactions
- Device, location, agent and network trust signals
- Behavioral signals (risk profile, timing pattern, merchant risk)

It also builds the raw per-transaction history vectors consumed by the
sequence analyzer.

Example:
    >>> from fraud_ensemble.features.transaction_features import FeatureExtractor
    >>> extractor = FeatureExtractor()
    >>> features = extractor.extract(transaction)
    >>> features.to_array().shape
    (14,)
"""

import math
from dataclasses import asdict, dataclass, fields, replace
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

from fraud_ensemble.data.schema import Transaction, parse_timestamp


MERCHANT_CATEGORY_RISK: Dict[str, float] = {
    'grocery': 0.1,
    'utilities': 0.2,
    'transport': 0.3,
    'telecom': 0.2,
    'fuel': 0.3,
    'education': 0.2,
    'healthcare': 0.2,
    'entertainment': 0.4,
    'investment': 0.8,
    'lottery': 0.9,
    'unknown': 0.7,
    'agent': 0.6,
}

RISK_PROFILE_LEVELS: Dict[str, float] = {
    'low': 0.2,
    'medium': 0.5,
    'high': 0.8,
}

DEFAULT_MERCHANT_RISK = 0.5
NEUTRAL_TRUST = 0.5
VELOCITY_WINDOWS_HOURS = (1, 6, 24)
MAX_DAILY_TRANSACTIONS = 20
MAX_PIN_ATTEMPTS = 5


@dataclass(frozen=True)
class MLFeatures:
    """Fixed-order feature record of one transaction."""
    amount: float
    hour: float
    day_of_week: float
    velocity_score: float
    frequency_score: float
    device_trust: float
    new_device: float
    location_change: float
    agent_trust: float
    network_trust: float
    pin_attempts: float
    user_risk_profile: float
    transaction_pattern: float
    merchant_category: float

    def to_array(self) -> np.ndarray:
        """Feature values in FEATURE_NAMES order."""
        return np.array([getattr(self, name) for name in FEATURE_NAMES], dtype=float)

    def to_dict(self) -> Dict[str, float]:
        """Convert to dictionary."""
        return asdict(self)

    def autoencoder_view(self) -> np.ndarray:
        """Feature values in AUTOENCODER_FEATURES order."""
        return np.array([getattr(self, name) for name in AUTOENCODER_FEATURES], dtype=float)

    def replace(self, **overrides: float) -> 'MLFeatures':
        """Copy of the record with the given fields overridden."""
        return replace(self, **overrides)

    @classmethod
    def from_array(cls, values: Sequence[float]) -> 'MLFeatures':
        """Build a record from values in FEATURE_NAMES order."""
        if len(values) != len(FEATURE_NAMES):
            raise ValueError(
                f"Expected {len(FEATURE_NAMES)} feature values, got {len(values)}"
            )
        return cls(**{name: float(v) for name, v in zip(FEATURE_NAMES, values)})


FEATURE_NAMES: List[str] = [f.name for f in fields(MLFeatures)]

# The reconstruction model does not see the two behavioral summary fields.
AUTOENCODER_FEATURES: List[str] = [
    name for name in FEATURE_NAMES
    if name not in ('user_risk_profile', 'transaction_pattern')
]


def js_weekday(moment: datetime) -> int:
    """Day of week with Sunday as 0."""
    return moment.isoweekday() % 7


def _epoch_seconds(moment: datetime) -> float:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.timestamp()


def encode_merchant_category(category: Optional[str]) -> float:
    """Risk weight of a merchant category; absent means 'unknown'."""
    return MERCHANT_CATEGORY_RISK.get(category or 'unknown', DEFAULT_MERCHANT_RISK)


def map_risk_profile(risk_profile: Optional[str]) -> float:
    """Numeric level of a user risk profile."""
    return RISK_PROFILE_LEVELS.get(risk_profile or 'medium', 0.5)


class FeatureExtractor:
    """
    Pure Transaction -> MLFeatures mapping.

    Missing optional inputs are defaulted rather than rejected. Time windows
    for velocity and frequency are measured back from the transaction's own
    timestamp so that extraction is reproducible.
    """

    def __init__(self, history_window: int = 10, history_size: int = 10):
        """
        Initialize feature extractor.

        Args:
            history_window: Number of most recent transactions in a history
            history_size: Length of each history vector (zero padded)
        """
        self.history_window = history_window
        self.history_size = history_size

    def extract(self, transaction: Transaction) -> MLFeatures:
        """
        Extract the feature record of a transaction.

        Args:
            transaction: Transaction to encode

        Returns:
            MLFeatures
        """
        occurred_at = transaction.occurred_at
        device = transaction.device_fingerprint
        agent = transaction.agent_info
        profile = transaction.user_profile

        pin_attempts = transaction.pin_attempts if transaction.pin_attempts else 1

        return MLFeatures(
            amount=math.log(transaction.amount + 1) / 10,
            hour=occurred_at.hour / 24,
            day_of_week=js_weekday(occurred_at) / 7,
            velocity_score=self.velocity_score(transaction),
            frequency_score=self.frequency_score(transaction),
            device_trust=device.trust_score if device else NEUTRAL_TRUST,
            new_device=1.0 if device and device.is_new_device else 0.0,
            location_change=self.location_risk(transaction),
            agent_trust=agent.trust_score if agent else NEUTRAL_TRUST,
            network_trust=(
                transaction.network_trust
                if transaction.network_trust is not None else NEUTRAL_TRUST
            ),
            pin_attempts=min(pin_attempts / MAX_PIN_ATTEMPTS, 1.0),
            user_risk_profile=map_risk_profile(profile.risk_profile if profile else None),
            transaction_pattern=self.transaction_pattern(transaction),
            merchant_category=encode_merchant_category(transaction.merchant_category)
        )

    def velocity_score(self, transaction: Transaction) -> float:
        """Highest amount-per-hour rate over the 1h, 6h and 24h windows."""
        recent = transaction.user_profile.recent_transactions if transaction.user_profile else ()
        reference = _epoch_seconds(transaction.occurred_at)

        max_velocity = 0.0
        for window_hours in VELOCITY_WINDOWS_HOURS:
            window_start = reference - window_hours * 3600
            total = sum(
                t.amount for t in recent
                if _epoch_seconds(parse_timestamp(t.timestamp)) > window_start
            )
            max_velocity = max(max_velocity, total / (window_hours * 1000))

        return min(max_velocity, 1.0)

    def frequency_score(self, transaction: Transaction) -> float:
        """Transactions in the last 24 hours relative to a daily maximum."""
        recent = transaction.user_profile.recent_transactions if transaction.user_profile else ()
        reference = _epoch_seconds(transaction.occurred_at)
        last_day = [
            t for t in recent
            if reference - _epoch_seconds(parse_timestamp(t.timestamp)) < 24 * 3600
        ]
        return min(len(last_day) / MAX_DAILY_TRANSACTIONS, 1.0)

    @staticmethod
    def location_risk(transaction: Transaction) -> float:
        profile = transaction.user_profile
        if not transaction.location or not profile or not profile.last_known_location:
            return 0.5
        return 0.1 if transaction.location == profile.last_known_location else 0.8

    @staticmethod
    def transaction_pattern(transaction: Transaction) -> float:
        """Timing and size heuristics; off-hours, weekends and large amounts add risk."""
        occurred_at = transaction.occurred_at
        is_business_hours = 9 <= occurred_at.hour <= 17
        is_weekend = js_weekday(occurred_at) % 6 == 0

        score = 0.5
        if not is_business_hours:
            score += 0.2
        if is_weekend:
            score += 0.1
        if transaction.amount > 1000:
            score += 0.2
        return min(score, 1.0)

    def transaction_history(self, transaction: Transaction) -> List[List[float]]:
        """
        Raw history vectors of the user's most recent transactions.

        Each vector holds log amount, hour, day of week, merchant risk and a
        location-mismatch flag, zero padded to ``history_size``.
        """
        profile = transaction.user_profile
        if not profile:
            return []

        history = []
        for past in profile.recent_transactions[-self.history_window:]:
            moment = parse_timestamp(past.timestamp)
            vector = [
                math.log(past.amount + 1),
                float(moment.hour),
                float(js_weekday(moment)),
                encode_merchant_category(past.merchant_category),
                0.0 if past.location == profile.last_known_location else 1.0,
            ]
            vector.extend([0.0] * (self.history_size - len(vector)))
            history.append(vector)
        return history


def features_to_matrix(features: Iterable[MLFeatures]) -> np.ndarray:
    """Stack feature records into an (n, 14) matrix."""
    rows = [f.to_array() for f in features]
    if not rows:
        return np.empty((0, len(FEATURE_NAMES)))
    return np.vstack(rows)
