"""
Anomaly Scoring — pluggable vector → probability scorers.

The detector only needs something that turns the 10-element feature
vector from ``ml.features`` into a score in [0, 1]:

  - WeightedSumScorer: fixed weighted sum, clipped. A deterministic
    stand-in until a trained model exists; it carries no learned signal.
  - EstimatorScorer: wraps any scikit-learn style estimator
    (``predict_proba`` or ``decision_function``).
  - Plain callables are accepted anywhere a scorer is expected.
"""

from collections.abc import Callable, Sequence
from typing import Any, Protocol, runtime_checkable

import joblib
import numpy as np
import structlog

from ml.features import FEATURE_NAMES, N_FEATURES

logger = structlog.get_logger()


@runtime_checkable
class AnomalyScorer(Protocol):
    def score(self, features: Sequence[float]) -> float: ...


class WeightedSumScorer:
    """Weighted sum of features plus a bias, clipped to [0, 1]."""

    # Movement and elapsed time dominate; calendar features barely count.
    DEFAULT_WEIGHTS = {
        "hour_of_day": 0.05,
        "day_of_week": 0.0,
        "event_type_code": 0.05,
        "participant_type_code": 0.05,
        "certification_count": -0.05,
        "hours_since_last": 0.2,
        "distance_from_last": 0.4,
        "history_length": 0.0,
        "country_code": 0.0,
        "metadata_complexity": 0.05,
    }
    DEFAULT_BIAS = 0.05

    def __init__(self, weights: Sequence[float] | None = None, bias: float = DEFAULT_BIAS):
        if weights is None:
            weights = [self.DEFAULT_WEIGHTS[name] for name in FEATURE_NAMES]
        self.weights = np.asarray(weights, dtype=float)
        if self.weights.shape != (N_FEATURES,):
            raise ValueError(f"Expected {N_FEATURES} weights, got {self.weights.shape}")
        self.bias = float(bias)

    def score(self, features: Sequence[float]) -> float:
        x = np.asarray(features, dtype=float)
        return float(np.clip(x @ self.weights + self.bias, 0.0, 1.0))


class EstimatorScorer:
    """Adapter for a fitted scikit-learn estimator."""

    def __init__(self, estimator: Any, positive_class_index: int = 1):
        self.estimator = estimator
        self.positive_class_index = positive_class_index

    def score(self, features: Sequence[float]) -> float:
        X = np.asarray([features], dtype=float)
        if hasattr(self.estimator, "predict_proba"):
            proba = self.estimator.predict_proba(X)[0]
            value = proba[self.positive_class_index]
        else:
            # decision_function: larger means more normal for outlier
            # detectors (IsolationForest), so squash the negated margin.
            margin = float(self.estimator.decision_function(X)[0])
            value = 1.0 / (1.0 + np.exp(margin * 10))
        return float(np.clip(value, 0.0, 1.0))


class CallableScorer:
    def __init__(self, fn: Callable[[Sequence[float]], float]):
        self.fn = fn

    def score(self, features: Sequence[float]) -> float:
        return float(self.fn(features))


def as_scorer(scorer: AnomalyScorer | Callable[[Sequence[float]], float]) -> AnomalyScorer:
    if isinstance(scorer, AnomalyScorer):
        return scorer
    if callable(scorer):
        return CallableScorer(scorer)
    raise TypeError(f"Not a scorer: {scorer!r}")


def load_scorer(path: str) -> AnomalyScorer:
    """Load a joblib-pickled estimator and wrap it."""
    estimator = joblib.load(path)
    logger.info("scoring.model_loaded", path=path, estimator=type(estimator).__name__)
    return EstimatorScorer(estimator)


def build_default_scorer(model_path: str = "") -> AnomalyScorer:
    """Trained model when a path is configured, otherwise the weighted-sum stand-in."""
    if model_path:
        return load_scorer(model_path)
    return WeightedSumScorer()
