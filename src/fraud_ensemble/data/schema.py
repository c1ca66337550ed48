"""
Transaction and Prediction Schemas

Typed records exchanged with the engine's collaborators:
- Transaction (with agent, device fingerprint and user profile sub-records)
  as produced by the payment front end and the fingerprinting service
- FraudPattern and FraudPrediction as emitted by the engine

Collaborator payloads use camelCase keys; ``from_dict`` accepts both
camelCase and snake_case so records can be built from JSON directly.

Example:
    >>> from fraud_ensemble.data.schema import Transaction
    >>> txn = Transaction.from_dict({
    ...     'id': 'txn_1', 'amount': 75, 'type': 'airtime',
    ...     'timestamp': '2024-03-05T10:15:00Z'
    ... })
    >>> txn.type
    <TransactionType.AIRTIME: 'airtime'>
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple


def _snake_case(key: str) -> str:
    return re.sub(r'(?<!^)(?=[A-Z])', '_', key).lower()


def _normalize_keys(payload: Mapping[str, Any]) -> Dict[str, Any]:
    return {_snake_case(k): v for k, v in payload.items()}


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp, accepting a trailing ``Z``.

    The wall-clock fields of the string are kept as given; no timezone
    conversion is applied.
    """
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    return datetime.fromisoformat(value)


class TransactionType(str, Enum):
    """Mobile money transaction types."""
    SEND_MONEY = "send_money"
    CASH_OUT = "cash_out"
    BILL_PAYMENT = "bill_payment"
    AIRTIME = "airtime"
    MERCHANT_PAYMENT = "merchant_payment"


class RiskLevel(str, Enum):
    """Risk tier derived from the fused score."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class AgentInfo:
    """Cash-in/cash-out agent that handled the transaction."""
    id: str
    trust_score: float = 0.5
    location: Optional[str] = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> 'AgentInfo':
        data = _normalize_keys(payload)
        return cls(
            id=str(data['id']),
            trust_score=float(data.get('trust_score', 0.5)),
            location=data.get('location')
        )


@dataclass(frozen=True)
class DeviceFingerprint:
    """Precomputed device fingerprint supplied by the fingerprinting service."""
    device_id: str
    is_new_device: bool = False
    trust_score: float = 0.5

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> 'DeviceFingerprint':
        data = _normalize_keys(payload)
        return cls(
            device_id=str(data.get('device_id', 'unknown_device')),
            is_new_device=bool(data.get('is_new_device', False)),
            trust_score=float(data.get('trust_score', 0.5))
        )


@dataclass(frozen=True)
class RecentTransaction:
    """Compact view of one of the user's past transactions."""
    amount: float
    timestamp: str
    merchant_category: Optional[str] = None
    location: Optional[str] = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> 'RecentTransaction':
        data = _normalize_keys(payload)
        return cls(
            amount=float(data.get('amount', 0.0)),
            timestamp=str(data['timestamp']),
            merchant_category=data.get('merchant_category'),
            location=data.get('location')
        )


@dataclass(frozen=True)
class UserProfile:
    """Account holder profile."""
    user_id: str
    last_known_location: Optional[str] = None
    recent_transactions: Tuple[RecentTransaction, ...] = ()
    risk_profile: str = "medium"

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> 'UserProfile':
        data = _normalize_keys(payload)
        recent = tuple(
            t if isinstance(t, RecentTransaction) else RecentTransaction.from_dict(t)
            for t in data.get('recent_transactions') or ()
        )
        return cls(
            user_id=str(data.get('user_id', 'unknown_user')),
            last_known_location=data.get('last_known_location'),
            recent_transactions=recent,
            risk_profile=data.get('risk_profile') or 'medium'
        )


@dataclass(frozen=True)
class Transaction:
    """A transaction submitted for risk scoring."""
    id: str
    amount: float
    timestamp: str
    type: TransactionType
    currency: str = "KES"
    location: Optional[str] = None
    merchant_category: Optional[str] = None
    description: Optional[str] = None
    agent_info: Optional[AgentInfo] = None
    device_fingerprint: Optional[DeviceFingerprint] = None
    user_profile: Optional[UserProfile] = None
    network_trust: Optional[float] = None
    pin_attempts: Optional[int] = None

    @property
    def occurred_at(self) -> datetime:
        """Parsed transaction timestamp."""
        return parse_timestamp(self.timestamp)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> 'Transaction':
        """
        Build a transaction from a collaborator payload.

        Args:
            payload: Mapping with camelCase or snake_case keys

        Returns:
            Transaction
        """
        data = _normalize_keys(payload)
        agent = data.get('agent_info')
        device = data.get('device_fingerprint')
        profile = data.get('user_profile')
        network_trust = data.get('network_trust')
        pin_attempts = data.get('pin_attempts')

        return cls(
            id=str(data.get('id', 'unknown')),
            amount=float(data['amount']),
            timestamp=str(data['timestamp']),
            type=TransactionType(data['type']),
            currency=data.get('currency') or 'KES',
            location=data.get('location'),
            merchant_category=data.get('merchant_category'),
            description=data.get('description'),
            agent_info=AgentInfo.from_dict(agent) if agent else None,
            device_fingerprint=DeviceFingerprint.from_dict(device) if device else None,
            user_profile=UserProfile.from_dict(profile) if profile else None,
            network_trust=float(network_trust) if network_trust is not None else None,
            pin_attempts=int(pin_attempts) if pin_attempts is not None else None
        )


@dataclass(frozen=True)
class FraudPattern:
    """A rule-based fraud pattern that fired for a transaction."""
    type: str
    confidence: float
    description: str
    indicators: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'type': self.type,
            'confidence': self.confidence,
            'description': self.description,
            'indicators': list(self.indicators)
        }


@dataclass(frozen=True)
class ModelInsights:
    """Per-model breakdown behind a fused score."""
    xgboost_score: float
    anomaly_score: float
    lstm_score: float
    lstm_pattern: str
    graph_risk_score: float
    graph_risk_nodes: Tuple[str, ...] = ()
    feature_importance: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'xgboost_score': self.xgboost_score,
            'anomaly_score': self.anomaly_score,
            'lstm_score': self.lstm_score,
            'lstm_pattern': self.lstm_pattern,
            'graph_risk_score': self.graph_risk_score,
            'graph_risk_nodes': list(self.graph_risk_nodes),
            'feature_importance': dict(self.feature_importance)
        }


@dataclass(frozen=True)
class FraudPrediction:
    """Scored transaction as returned by the engine."""
    transaction_id: str
    risk_score: float
    risk_level: RiskLevel
    is_fraudulent: bool
    confidence: float
    detected_patterns: Tuple[FraudPattern, ...]
    explanation: str
    recommended_action: str
    timestamp: str
    ml_insights: ModelInsights

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'transaction_id': self.transaction_id,
            'risk_score': self.risk_score,
            'risk_level': self.risk_level.value,
            'is_fraudulent': self.is_fraudulent,
            'confidence': self.confidence,
            'detected_patterns': [p.to_dict() for p in self.detected_patterns],
            'explanation': self.explanation,
            'recommended_action': self.recommended_action,
            'timestamp': self.timestamp,
            'ml_insights': self.ml_insights.to_dict()
        }
