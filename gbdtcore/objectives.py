"""Loss functions that supply gradients and hessians for boosting."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np


@dataclass
class ObjectiveConfig:
    """Settings shared by the objective functions."""

    is_unbalance: bool = False
    sigmoid: float = 1.0
    num_class: int = 1


def softmax(values) -> np.ndarray:
    """Softmax of ``values``; for 2-D input, taken down each column."""
    arr = np.asarray(values, dtype=np.float64)
    shifted = np.exp(arr - np.max(arr, axis=0))
    return shifted / np.sum(shifted, axis=0)


class ObjectiveFunction(ABC):
    """Computes first and second order gradients of a loss."""

    def __init__(self) -> None:
        self.num_data = 0
        self.labels: np.ndarray | None = None
        self.weights: np.ndarray | None = None

    @property
    def sigmoid(self) -> float:
        """Sigmoid parameter used to transform output, or -1 when none is used."""
        return -1.0

    def init(self, labels: Sequence[float], weights: Sequence[float] | None = None) -> None:
        """Bind the labels (and optional per-row weights) of the training data."""
        label_arr = np.asarray(labels, dtype=np.float64)
        if weights is not None:
            weight_arr = np.asarray(weights, dtype=np.float64)
            if len(weight_arr) != len(label_arr):
                raise ValueError("weights and labels differ in length")
        else:
            weight_arr = None
        self.labels = label_arr
        self.weights = weight_arr
        self.num_data = len(label_arr)

    def _check_score(self, score, expected: int) -> np.ndarray:
        if self.labels is None:
            raise RuntimeError("objective used before init")
        arr = np.asarray(score, dtype=np.float64)
        if arr.shape != (expected,):
            raise ValueError(f"expected {expected} scores, got {arr.size}")
        return arr

    @abstractmethod
    def get_gradients(self, score) -> tuple[np.ndarray, np.ndarray]:
        """Return ``(gradients, hessians)`` for the current scores."""


class RegressionL2Loss(ObjectiveFunction):
    """Squared error regression."""

    def __init__(self, config: ObjectiveConfig) -> None:
        super().__init__()

    def init(self, labels, weights=None) -> None:
        super().init(labels, weights)

    def get_gradients(self, score):
        scores = self._check_score(score, self.num_data)
        gradients = scores - self.labels
        if self.weights is None:
            return gradients, np.ones(self.num_data)
        return gradients * self.weights, self.weights.copy()


class BinaryLogloss(ObjectiveFunction):
    """Logistic loss for binary classification with labels 0 and 1."""

    def __init__(self, config: ObjectiveConfig) -> None:
        super().__init__()
        self.is_unbalance = config.is_unbalance
        self._sigmoid = float(config.sigmoid)
        if self._sigmoid <= 0.0:
            raise ValueError(f"sigmoid parameter {self._sigmoid} should be greater than zero")
        self.label_val = np.array([-1.0, 1.0])
        self.label_weights = np.array([1.0, 1.0])

    @property
    def sigmoid(self) -> float:
        return self._sigmoid

    def init(self, labels, weights=None) -> None:
        super().init(labels, weights)
        cnt_positive = int(np.count_nonzero(self.labels == 1))
        cnt_negative = self.num_data - cnt_positive
        if cnt_positive == 0 or cnt_negative == 0:
            raise ValueError("input training data only contains one class")
        self.label_weights = np.array([1.0, 1.0])
        if self.is_unbalance:
            self.label_weights[0] = cnt_positive / cnt_negative

    def get_gradients(self, score):
        scores = self._check_score(score, self.num_data)
        label_idx = self.labels.astype(np.int64)
        if np.any((label_idx < 0) | (label_idx > 1)):
            raise ValueError("binary labels must be 0 or 1")
        label = self.label_val[label_idx]
        label_weight = self.label_weights[label_idx]
        if self.weights is not None:
            label_weight = label_weight * self.weights
        with np.errstate(over="ignore"):
            response = -2.0 * label * self._sigmoid / (
                1.0 + np.exp(2.0 * label * self._sigmoid * scores)
            )
        abs_response = np.abs(response)
        gradients = response * label_weight
        hessians = abs_response * (2.0 * self._sigmoid - abs_response) * label_weight
        return gradients, hessians


class MulticlassLogloss(ObjectiveFunction):
    """Softmax cross-entropy; scores are laid out class by class."""

    def __init__(self, config: ObjectiveConfig) -> None:
        super().__init__()
        self.num_class = int(config.num_class)
        self.label_int: np.ndarray | None = None

    def init(self, labels, weights=None) -> None:
        super().init(labels, weights)
        label_int = self.labels.astype(np.int64)
        bad = (label_int < 0) | (label_int >= self.num_class)
        if np.any(bad):
            found = int(label_int[np.argmax(bad)])
            raise ValueError(f"label must be in [0, {self.num_class}), but found {found}")
        self.label_int = label_int

    def get_gradients(self, score):
        scores = self._check_score(score, self.num_class * self.num_data)
        probs = softmax(scores.reshape(self.num_class, self.num_data))
        one_hot = np.zeros_like(probs)
        one_hot[self.label_int, np.arange(self.num_data)] = 1.0
        gradients = probs - one_hot
        hessians = 2.0 * probs * (1.0 - probs)
        if self.weights is not None:
            gradients = gradients * self.weights
            hessians = hessians * self.weights
        return gradients.ravel(), hessians.ravel()


_OBJECTIVES = {
    "regression": RegressionL2Loss,
    "binary": BinaryLogloss,
    "multiclass": MulticlassLogloss,
}


def create_objective_function(name: str, config: ObjectiveConfig) -> ObjectiveFunction:
    """Build the objective registered under ``name``."""
    try:
        factory = _OBJECTIVES[name]
    except KeyError:
        raise ValueError(f"unknown objective: {name}") from None
    return factory(config)