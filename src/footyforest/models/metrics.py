# path: src/footyforest/models/metrics.py
"""
Metrics utilities for FootyForest models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

import numpy as np
import pandas as pd
from sklearn.metrics import (
    accuracy_score,
    confusion_matrix,
    log_loss,
    precision_recall_fscore_support,
)

from footyforest.config import CLASS_LABELS, MIN_EVALUATION_SAMPLES
from footyforest.errors import InsufficientDataError
from footyforest.models.forest import Ensemble
from footyforest.utils.logging_utils import get_logger

logger = get_logger(__name__)


@dataclass
class EvaluationReport:
    """Metrics of one model on one labeled data set."""

    accuracy: float
    correct: int
    total: int
    per_class: Dict[str, Dict[str, float]]
    confusion_matrix: List[List[int]]
    baseline_accuracy: float
    log_loss: float
    class_labels: List[str] = field(default_factory=lambda: list(CLASS_LABELS))
    model_name: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model_name": self.model_name,
            "accuracy": self.accuracy,
            "correct": self.correct,
            "total": self.total,
            "per_class": self.per_class,
            "confusion_matrix": self.confusion_matrix,
            "baseline_accuracy": self.baseline_accuracy,
            "log_loss": self.log_loss,
            "class_labels": self.class_labels,
        }


def compute_classification_metrics(
    y_true: Sequence[str],
    y_pred: Sequence[str],
    y_proba: np.ndarray,
    labels: Sequence[str] | None = None,
) -> Dict[str, Any]:
    """
    Compute a set of classification metrics.

    Parameters
    ----------
    y_true : Sequence[str]
        True class labels.
    y_pred : Sequence[str]
        Predicted class labels.
    y_proba : np.ndarray
        Predicted probabilities with shape (n_samples, n_classes), columns in
        `labels` order.
    labels : Sequence[str] | None
        Class labels (defaults to CLASS_LABELS). Fixes the order of the
        per-class table and of the confusion matrix.

    Returns
    -------
    dict
        {
          "accuracy": float,
          "correct": int,
          "total": int,
          "per_class": {label: {precision, recall, f1, support, tp, fp, fn}},
          "confusion_matrix": list[list[int]],
          "baseline_accuracy": float,
          "log_loss": float,
        }
    """
    if labels is None:
        labels = CLASS_LABELS
    labels = list(labels)
    y_true = list(y_true)
    y_pred = list(y_pred)

    acc = accuracy_score(y_true, y_pred)
    correct = int(sum(t == p for t, p in zip(y_true, y_pred)))

    precision, recall, f1, support = precision_recall_fscore_support(
        y_true, y_pred, labels=labels, zero_division=0
    )
    cm = confusion_matrix(y_true, y_pred, labels=labels)

    per_class: Dict[str, Dict[str, float]] = {}
    for k, label in enumerate(labels):
        tp = int(cm[k, k])
        per_class[label] = {
            "precision": float(precision[k]),
            "recall": float(recall[k]),
            "f1": float(f1[k]),
            "support": int(support[k]),
            "true_positives": tp,
            "false_positives": int(cm[:, k].sum() - tp),
            "false_negatives": int(cm[k, :].sum() - tp),
        }

    # Majority-class baseline accuracy
    counts = pd.Series(y_true).value_counts()
    baseline_acc = float(counts.max() / counts.sum()) if counts.sum() > 0 else float("nan")

    # Log loss on class indices so columns line up with `labels`
    label_to_idx = {lab: i for i, lab in enumerate(labels)}
    try:
        ll = log_loss(
            [label_to_idx[t] for t in y_true],
            np.asarray(y_proba, dtype=float),
            labels=list(range(len(labels))),
        )
    except ValueError:
        # This can happen in extreme edge cases (e.g., a single sample)
        ll = float("nan")

    return {
        "accuracy": float(acc),
        "correct": correct,
        "total": len(y_true),
        "per_class": per_class,
        "confusion_matrix": cm.tolist(),
        "baseline_accuracy": baseline_acc,
        "log_loss": float(ll),
    }


def evaluate(
    ensemble: Ensemble,
    X: pd.DataFrame,
    y: Sequence[str],
    min_samples: int = MIN_EVALUATION_SAMPLES,
) -> EvaluationReport:
    """
    Score an ensemble on labeled samples.

    Raises
    ------
    InsufficientDataError
        If fewer than `min_samples` samples are given.
    """
    y = list(y)
    if len(y) < min_samples:
        raise InsufficientDataError(
            f"Insufficient evaluation data: {len(y)} samples "
            f"(minimum {min_samples} required)",
            available=len(y),
            required=min_samples,
        )

    y_pred = ensemble.predict_frame(X)
    y_proba = ensemble.predict_proba_frame(X)
    metrics = compute_classification_metrics(
        y_true=y,
        y_pred=y_pred,
        y_proba=y_proba,
        labels=ensemble.class_labels,
    )
    logger.info(
        "Evaluation: accuracy %.3f on %d samples (baseline %.3f)",
        metrics["accuracy"],
        metrics["total"],
        metrics["baseline_accuracy"],
    )
    return EvaluationReport(class_labels=list(ensemble.class_labels), **metrics)
