"""
Sequence Models for Transaction Histories

A single LSTM cell run over the trailing window of a user's transaction
history, with a linear head predicting the next transaction vector.

The sequence anomaly score is computed directly from the raw history (distance to
the previous transaction averaged over the window) and does not depend on the cell
weights. The prediction head is not trained against a loss.

Example:
    >>> from fraud_ensemble.models.sequence_models import LSTMTimeSeriesAnalyzer
    >>> analyzer = LSTMTimeSeriesAnalyzer(hidden_size=16, sequence_length=5, random_state=42)
    >>> result = analyzer.analyze_transaction_sequence(history)
    >>> result.pattern
    'normal'
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from loguru import logger
from scipy.special import expit

GATES = ('forget', 'input', 'candidate', 'output')


class SequencePattern(str, Enum):
    """Classification of a transaction sequence."""
    NORMAL = "normal"
    SUSPICIOUS = "suspicious"
    FRAUDULENT = "fraudulent"


@dataclass(frozen=True)
class SequenceAnalysis:
    """Outcome of analyzing one history."""
    predicted_next: List[float]
    anomaly_score: float
    pattern: SequencePattern


class LSTMCell:
    """
    LSTM cell with forget, input, candidate and output gates.

    Every gate is a dense projection of ``[x, h]``; the candidate uses tanh,
    the others sigmoid.
    """

    def __init__(
        self,
        input_size: int,
        hidden_size: int,
        rng: Optional[np.random.Generator] = None,
        init_scale: float = 0.1
    ):
        rng = rng if rng is not None else np.random.default_rng()
        self.input_size = input_size
        self.hidden_size = hidden_size
        self.weights: Dict[str, np.ndarray] = {}
        self.biases: Dict[str, np.ndarray] = {}
        for gate in GATES:
            self.weights[gate] = (rng.random((hidden_size, input_size + hidden_size)) - 0.5) * init_scale
            self.biases[gate] = (rng.random(hidden_size) - 0.5) * init_scale

    def step(
        self,
        x: np.ndarray,
        hidden: np.ndarray,
        cell: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Advance the recurrence by one input.

        Returns:
            (new hidden state, new cell state)
        """
        combined = np.concatenate([x, hidden])
        pre = {gate: self.weights[gate] @ combined + self.biases[gate] for gate in GATES}

        forget_gate = expit(np.clip(pre['forget'], -500, 500))
        input_gate = expit(np.clip(pre['input'], -500, 500))
        candidate = np.tanh(pre['candidate'])
        output_gate = expit(np.clip(pre['output'], -500, 500))

        new_cell = forget_gate * cell + input_gate * candidate
        new_hidden = output_gate * np.tanh(new_cell)
        return new_hidden, new_cell


class LSTMTimeSeriesAnalyzer:
    """
    Sequence anomaly analyzer over recent transaction vectors.

    Example:
        >>> analyzer = LSTMTimeSeriesAnalyzer()
        >>> analyzer.analyze_transaction_sequence([[4.2, 10, 2, 0.2, 0] + [0] * 5])
    """

    def __init__(
        self,
        input_size: int = 10,
        hidden_size: int = 16,
        sequence_length: int = 5,
        distance_normalizer: float = 100.0,
        random_state: Optional[int] = None
    ):
        """
        Initialize sequence analyzer.

        Args:
            input_size: Length of each history vector
            hidden_size: LSTM hidden state size
            sequence_length: Number of trailing history vectors processed
            distance_normalizer: Divisor mapping the averaged step distance to [0, 1]
            random_state: Random seed for weight initialization
        """
        self.input_size = input_size
        self.hidden_size = hidden_size
        self.sequence_length = sequence_length
        self.distance_normalizer = distance_normalizer

        rng = np.random.default_rng(random_state)
        self.cell = LSTMCell(input_size, hidden_size, rng)
        self.head_weights = (rng.random((input_size, hidden_size)) - 0.5) * 0.1
        self.head_biases = (rng.random(input_size) - 0.5) * 0.1

        logger.info("Initialized LSTMTimeSeriesAnalyzer")

    def analyze_transaction_sequence(self, history: Sequence[Sequence[float]]) -> SequenceAnalysis:
        """
        Analyze the trailing window of a transaction history.

        Args:
            history: History vectors, oldest first

        Returns:
            SequenceAnalysis
        """
        sequence = self._prepare(history)
        if len(sequence) == 0:
            logger.warning("Empty transaction history; sequence treated as normal")

        hidden, _ = self.process_sequence(sequence)
        predicted_next = self.head_weights @ hidden + self.head_biases
        anomaly_score = self.sequence_anomaly_score(sequence)

        return SequenceAnalysis(
            predicted_next=predicted_next.tolist(),
            anomaly_score=anomaly_score,
            pattern=self.classify(anomaly_score)
        )

    def process_sequence(self, sequence: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Run the cell over the sequence from zero state."""
        hidden = np.zeros(self.hidden_size)
        cell = np.zeros(self.hidden_size)
        for x in sequence:
            hidden, cell = self.cell.step(x, hidden, cell)
        return hidden, cell

    def sequence_anomaly_score(self, sequence: np.ndarray) -> float:
        """
        Distance to the previous vector averaged over every position, normalized to [0, 1].

        The first position has no predecessor and counts as zero, so the
        summed step distances are divided by the sequence length.
        """
        if len(sequence) < 2:
            return 0.0
        steps = np.linalg.norm(np.diff(sequence, axis=0), axis=1)
        return float(min(steps.sum() / len(sequence) / self.distance_normalizer, 1.0))

    @staticmethod
    def classify(anomaly_score: float) -> SequencePattern:
        if anomaly_score > 0.8:
            return SequencePattern.FRAUDULENT
        if anomaly_score > 0.5:
            return SequencePattern.SUSPICIOUS
        return SequencePattern.NORMAL

    def _prepare(self, history: Sequence[Sequence[float]]) -> np.ndarray:
        """Trailing window, each vector truncated or zero padded to input_size."""
        window = list(history)[-self.sequence_length:] if self.sequence_length > 0 else []
        sequence = np.zeros((len(window), self.input_size))
        for i, vector in enumerate(window):
            values = np.asarray(vector, dtype=float)[:self.input_size]
            sequence[i, :len(values)] = values
        return sequence
