"""
Unsupervised Anomaly Detection for Fraud

Reconstruction-error anomaly detector built from plain numpy dense layers:
- DenseLayer: fully connected layer with ReLU activation
- AutoencoderAnomalyDetector: one encoder and one decoder layer trained on
  normal transactions; large reconstruction error flags an anomaly

The backward pass is a simplified local rule (no activation derivative),
not exact backpropagation. The error driving the updates is reconstruction
minus input, the gradient of the squared error; with the opposite sign the
rule `w -= lr * error_i * input_j` moves the reconstruction away from the
input and training diverges. Encoder biases start slightly positive so the
hidden ReLUs are active for the (non-negative) feature vectors.

Example:
    >>> from fraud_ensemble.models.anomaly_detection import AutoencoderAnomalyDetector
    >>> detector = AutoencoderAnomalyDetector(input_size=12, hidden_size=8)
    >>> detector.fit(normal_samples)
    >>> result = detector.detect_anomaly(sample)
    >>> result.is_anomaly, result.anomaly_score
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd
from loguru import logger


@dataclass(frozen=True)
class AnomalyResult:
    """Outcome of scoring one sample."""
    is_anomaly: bool
    reconstruction_error: float
    anomaly_score: float


class DenseLayer:
    """Fully connected layer with ReLU activation."""

    def __init__(
        self,
        input_size: int,
        output_size: int,
        rng: Optional[np.random.Generator] = None,
        init_scale: float = 0.1,
        bias_offset: float = 0.0
    ):
        """
        Initialize dense layer.

        Args:
            input_size: Number of inputs
            output_size: Number of outputs
            rng: Random generator for weight initialization
            init_scale: Width of the uniform initialization interval
            bias_offset: Center of the bias initialization interval
        """
        rng = rng if rng is not None else np.random.default_rng()
        self.weights = (rng.random((output_size, input_size)) - 0.5) * init_scale
        self.biases = (rng.random(output_size) - 0.5) * init_scale + bias_offset

    def forward(self, x: np.ndarray) -> np.ndarray:
        return np.maximum(self.weights @ x + self.biases, 0.0)

    def backward(self, error: np.ndarray, layer_input: np.ndarray, learning_rate: float) -> np.ndarray:
        """
        Apply ``w -= lr * error_i * input_j`` and return the error for the previous layer.

        Args:
            error: Error at this layer's outputs
            layer_input: Input the layer saw in the forward pass
            learning_rate: Step size

        Returns:
            Error propagated through the (pre-update) weights
        """
        previous_error = self.weights.T @ error
        self.weights -= learning_rate * np.outer(error, layer_input)
        self.biases -= learning_rate * error
        return previous_error


class AutoencoderAnomalyDetector:
    """
    Two-layer autoencoder anomaly detector.

    Reconstruction error is the root-mean-square difference between a
    sample and its reconstruction. Samples whose error exceeds
    ``anomaly_threshold`` are anomalies; the anomaly score is the error
    divided by the threshold, clamped to [0, 1].

    Example:
        >>> detector = AutoencoderAnomalyDetector(input_size=12, hidden_size=8, random_state=42)
        >>> detector.fit(X_normal)
        >>> detector.detect_anomaly(X_normal[0]).reconstruction_error
    """

    def __init__(
        self,
        input_size: int = 12,
        hidden_size: int = 8,
        learning_rate: float = 0.05,
        epochs: int = 150,
        anomaly_threshold: float = 0.1,
        random_state: Optional[int] = None
    ):
        """
        Initialize autoencoder detector.

        Args:
            input_size: Dimension of the samples
            hidden_size: Dimension of the encoding
            learning_rate: Step size of the local update rule
            epochs: Passes over the training samples
            anomaly_threshold: RMSE above which a sample is anomalous
            random_state: Random seed for weight initialization
        """
        self.input_size = input_size
        self.hidden_size = hidden_size
        self.learning_rate = learning_rate
        self.epochs = epochs
        self.anomaly_threshold = anomaly_threshold
        self.random_state = random_state

        rng = np.random.default_rng(random_state)
        self.encoder = DenseLayer(input_size, hidden_size, rng, bias_offset=0.1)
        self.decoder = DenseLayer(hidden_size, input_size, rng)
        self.is_fitted = False

    def fit(
        self,
        samples: Union[pd.DataFrame, np.ndarray, Sequence[Sequence[float]]],
        epochs: Optional[int] = None
    ) -> 'AutoencoderAnomalyDetector':
        """
        Train on (normal) samples, continuing from the current weights.

        Args:
            samples: Training samples (n_samples, input_size)
            epochs: Overrides the configured number of epochs

        Returns:
            Self
        """
        if isinstance(samples, pd.DataFrame):
            samples = samples.values
        X = np.asarray(samples, dtype=float)
        if X.size == 0:
            logger.warning("Autoencoder received no training samples; weights unchanged")
            return self
        if X.ndim != 2 or X.shape[1] != self.input_size:
            raise ValueError(
                f"Expected samples of shape (n, {self.input_size}), got {X.shape}"
            )

        epochs = self.epochs if epochs is None else epochs
        logger.info(f"Fitting autoencoder on {len(X)} samples for {epochs} epochs")

        for epoch in range(epochs):
            errors = [self._train_sample(x) for x in X]
            if (epoch + 1) % 25 == 0:
                logger.debug(f"Epoch {epoch + 1}/{epochs}: mean rmse={np.mean(errors):.4f}")

        self.is_fitted = True
        logger.info("Autoencoder fitting completed")
        return self

    train = fit

    def reconstruct(self, x: Union[Sequence[float], np.ndarray]) -> np.ndarray:
        """Encode then decode a sample."""
        return self.decoder.forward(self.encoder.forward(np.asarray(x, dtype=float)))

    def reconstruction_error(self, x: Union[Sequence[float], np.ndarray]) -> float:
        x = np.asarray(x, dtype=float)
        return float(np.sqrt(np.mean((x - self.reconstruct(x)) ** 2)))

    def detect_anomaly(self, x: Union[Sequence[float], np.ndarray]) -> AnomalyResult:
        """
        Score one sample.

        Args:
            x: Sample of length input_size

        Returns:
            AnomalyResult
        """
        error = self.reconstruction_error(x)
        return AnomalyResult(
            is_anomaly=error > self.anomaly_threshold,
            reconstruction_error=error,
            anomaly_score=min(error / self.anomaly_threshold, 1.0)
        )

    def predict_scores(self, X: Union[pd.DataFrame, np.ndarray]) -> np.ndarray:
        """Anomaly scores of every row."""
        if isinstance(X, pd.DataFrame):
            X = X.values
        return np.array([self.detect_anomaly(x).anomaly_score for x in np.asarray(X, dtype=float)])

    def _train_sample(self, x: np.ndarray) -> float:
        hidden = self.encoder.forward(x)
        reconstruction = self.decoder.forward(hidden)

        # Gradient of the squared error with respect to the reconstruction.
        error = reconstruction - x
        hidden_error = self.decoder.backward(error, hidden, self.learning_rate)
        self.encoder.backward(hidden_error, x, self.learning_rate)

        return float(np.sqrt(np.mean(error ** 2)))
