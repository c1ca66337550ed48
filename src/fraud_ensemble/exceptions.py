"""Exceptions raised by the fraud risk engine."""


class FraudEngineError(Exception):
    """Base class for engine errors."""


class EngineInitializationError(FraudEngineError):
    """Initial model training failed; the engine instance is unusable."""


class RetrainingError(FraudEngineError):
    """Retraining failed or timed out; the previous models stay active."""
