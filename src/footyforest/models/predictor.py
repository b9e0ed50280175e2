# path: src/footyforest/models/predictor.py
"""
Prediction and per-instance explanation for trained ensembles.

`predict` is a pure function of (ensemble, feature vector): no I/O, no
caching, same output for the same input.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

import numpy as np

from footyforest.models.forest import Ensemble
from footyforest.utils.logging_utils import get_logger

logger = get_logger(__name__)

PROBABILITY_TOLERANCE = 1e-6


@dataclass(frozen=True)
class PredictionResult:
    predicted_class: str
    probabilities: Dict[str, float]
    confidence: float
    model_name: Optional[str] = None
    match_id: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "match_id": self.match_id,
            "model_name": self.model_name,
            "predicted_class": self.predicted_class,
            "probabilities": dict(self.probabilities),
            "confidence": self.confidence,
        }


def _check_features(ensemble: Ensemble, features: Mapping[str, float]) -> None:
    missing = [name for name in ensemble.feature_names if name not in features]
    if missing:
        raise ValueError(
            f"Feature vector is missing {len(missing)} features expected by the "
            f"model, e.g. {missing[:5]}"
        )
    non_finite = [
        name for name in ensemble.feature_names if not math.isfinite(float(features[name]))
    ]
    if non_finite:
        raise ValueError(f"Feature vector has non-finite values: {non_finite}")


def predict(
    ensemble: Ensemble,
    features: Mapping[str, float],
    model_name: Optional[str] = None,
    match_id: Any = None,
) -> PredictionResult:
    """
    Class probabilities (vote shares), predicted class and confidence.

    The probabilities cover every class label and sum to 1; confidence is the
    probability of the predicted class.
    """
    _check_features(ensemble, features)
    probabilities = ensemble.predict_proba(features)
    predicted = ensemble.predict(features)

    total = sum(probabilities.values())
    if abs(total - 1.0) > PROBABILITY_TOLERANCE:
        raise ValueError(f"Ensemble probabilities sum to {total}, expected 1")

    return PredictionResult(
        predicted_class=predicted,
        probabilities=probabilities,
        confidence=probabilities[predicted],
        model_name=model_name,
        match_id=match_id,
    )


def explain_prediction(
    ensemble: Ensemble,
    features: Mapping[str, float],
    top_n: int = 8,
) -> List[Dict[str, Any]]:
    """
    Compute a simple local explanation for a single instance.

    Contribution is approximated as:
        contribution_i = feature_importance_i * (value_i - mean_i)

    where the importances are the ensemble's normalized impurity decreases
    and the means are training-set feature means.

    Returns
    -------
    List[Dict[str, Any]]
        Up to `top_n` dicts sorted by absolute contribution (descending), each
        with feature_name, value, mean, importance, contribution, direction.
    """
    _check_features(ensemble, features)
    names = list(ensemble.feature_names)
    values = np.asarray([float(features[name]) for name in names], dtype=float)
    means = np.asarray(ensemble.feature_means, dtype=float)
    importances = np.asarray(ensemble.feature_importances, dtype=float)

    contributions = (values - means) * importances
    idx_sorted = np.argsort(np.abs(contributions), kind="mergesort")[::-1]
    idx_top = idx_sorted[: min(top_n, len(idx_sorted))]

    explanation: List[Dict[str, Any]] = []
    for i in idx_top:
        contrib = float(contributions[i])
        explanation.append(
            {
                "feature_name": names[i],
                "value": float(values[i]),
                "mean": float(means[i]),
                "importance": float(importances[i]),
                "contribution": contrib,
                "direction": "positive"
                if contrib > 0
                else "negative" if contrib < 0 else "neutral",
            }
        )
    return explanation


def top_feature_importances(ensemble: Ensemble, top_n: int = 20) -> List[Dict[str, float]]:
    """Most important features of an ensemble, descending."""
    pairs = sorted(
        zip(ensemble.feature_names, ensemble.feature_importances),
        key=lambda item: item[1],
        reverse=True,
    )
    return [{"feature_name": name, "importance": float(imp)} for name, imp in pairs[:top_n]]
