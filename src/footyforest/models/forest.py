# path: src/footyforest/models/forest.py
"""
Ensembles of decision trees and their trainer.

Each tree casts one vote (the majority class of the leaf it reaches). The
probability of a class is its share of the votes; the predicted class is the
most voted one, ties going to the class whose first vote came earliest in
tree order.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from footyforest.config import CLASS_LABELS, FEATURE_SCHEMA_VERSION, RANDOM_STATE
from footyforest.features.feature_builder import FEATURE_NAMES
from footyforest.models.jobs import CancellationToken
from footyforest.models.tree import DecisionTree, TreeBuilder
from footyforest.utils.logging_utils import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ForestParams:
    """Hyperparameters of an ensemble."""

    n_estimators: int = 100
    max_depth: int = 10
    min_samples_split: int = 2
    min_samples_leaf: int = 1
    random_state: int = RANDOM_STATE
    bootstrap: bool = True

    def __post_init__(self) -> None:
        if self.n_estimators < 1:
            raise ValueError("n_estimators must be at least 1")

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, params: Mapping[str, Any]) -> "ForestParams":
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = set(params) - known
        if unknown:
            raise ValueError(f"Unknown hyperparameters: {sorted(unknown)}")
        return cls(**dict(params))


@dataclass(frozen=True)
class Ensemble:
    """A trained, immutable forest plus its training metadata."""

    trees: Tuple[DecisionTree, ...]
    params: ForestParams
    model_type: str
    feature_names: Tuple[str, ...]
    class_labels: Tuple[str, ...]
    feature_schema_version: int
    trained_at: str
    n_samples: int
    feature_importances: Tuple[float, ...]
    feature_means: Tuple[float, ...]
    cv_score: Optional[float] = None
    test_score: Optional[float] = None

    @property
    def n_estimators(self) -> int:
        return len(self.trees)

    def votes(self, features: Mapping[str, float]) -> Dict[str, int]:
        """Vote count per class, in first-vote order."""
        counts: Dict[str, int] = {}
        for tree in self.trees:
            label = tree.predict(features)
            counts[label] = counts.get(label, 0) + 1
        return counts

    def predict_proba(self, features: Mapping[str, float]) -> Dict[str, float]:
        counts = self.votes(features)
        return {
            label: counts.get(label, 0) / self.n_estimators
            for label in self.class_labels
        }

    def predict(self, features: Mapping[str, float]) -> str:
        return _first_max(self.votes(features))

    def predict_frame(self, X: pd.DataFrame) -> List[str]:
        """Predicted labels for every row of a feature DataFrame."""
        matrix = X.loc[:, list(self.feature_names)].to_numpy(dtype=float)
        predictions = []
        for row in matrix:
            counts: Dict[str, int] = {}
            for tree in self.trees:
                label = tree.predict_row(row)
                counts[label] = counts.get(label, 0) + 1
            predictions.append(_first_max(counts))
        return predictions

    def predict_proba_frame(self, X: pd.DataFrame) -> np.ndarray:
        """Vote shares, shape (n_rows, n_classes) in `class_labels` order."""
        matrix = X.loc[:, list(self.feature_names)].to_numpy(dtype=float)
        index = {label: k for k, label in enumerate(self.class_labels)}
        proba = np.zeros((len(matrix), len(self.class_labels)), dtype=float)
        for i, row in enumerate(matrix):
            for tree in self.trees:
                proba[i, index[tree.predict_row(row)]] += 1.0
        return proba / self.n_estimators

    def with_scores(self, cv_score: Optional[float], test_score: Optional[float]) -> "Ensemble":
        return dataclasses.replace(self, cv_score=cv_score, test_score=test_score)

    def info(self) -> Dict[str, Any]:
        return {
            "model_type": self.model_type,
            "trained_at": self.trained_at,
            "training_samples": self.n_samples,
            "n_estimators": self.n_estimators,
            "parameters": self.params.to_dict(),
            "feature_schema_version": self.feature_schema_version,
            "n_features": len(self.feature_names),
            "cv_score": self.cv_score,
            "test_score": self.test_score,
        }


def _first_max(counts: Dict[str, int]) -> str:
    best_label = None
    best_count = -1
    for label, count in counts.items():
        if count > best_count:
            best_label, best_count = label, count
    return best_label


def encode_labels(labels: Sequence[str], class_labels: Sequence[str] = CLASS_LABELS) -> np.ndarray:
    label_to_idx = {lab: i for i, lab in enumerate(class_labels)}
    try:
        return np.asarray([label_to_idx[lab] for lab in labels], dtype=int)
    except KeyError as exc:
        raise ValueError(f"Unknown class label: {exc.args[0]}") from None


class EnsembleTrainer:
    """
    Train `n_estimators` trees into an `Ensemble`.

    With `bootstrap=True` tree i is grown on a resample drawn from
    `numpy.random.default_rng(random_state + i)`; otherwise every tree sees the
    full sample set. Trees may be grown on `n_jobs` joblib threads; the
    result is identical to sequential training.
    """

    def __init__(self, n_jobs: int = 1):
        self.n_jobs = n_jobs

    def train(
        self,
        X: pd.DataFrame | np.ndarray,
        labels: Sequence[str],
        params: ForestParams,
        model_type: str = "random_forest",
        cancel_token: Optional[CancellationToken] = None,
        feature_names: Sequence[str] = FEATURE_NAMES,
        class_labels: Sequence[str] = CLASS_LABELS,
    ) -> Ensemble:
        if isinstance(X, pd.DataFrame):
            matrix = X.loc[:, list(feature_names)].to_numpy(dtype=float)
        else:
            matrix = np.asarray(X, dtype=float)
        y = encode_labels(list(labels), class_labels)
        if len(matrix) == 0:
            raise ValueError("Cannot train an ensemble on an empty sample set")
        if len(matrix) != len(y):
            raise ValueError("X and labels must have the same number of samples")
        if not np.isfinite(matrix).all():
            raise ValueError("Training features must be finite")

        logger.debug(
            "Training %s: %d trees on %d samples", model_type, params.n_estimators, len(y)
        )

        def grow(tree_index: int) -> DecisionTree:
            if params.bootstrap:
                rng = np.random.default_rng(params.random_state + tree_index)
                sample_idx = rng.integers(0, len(y), size=len(y))
            else:
                sample_idx = np.arange(len(y))
            builder = TreeBuilder(
                max_depth=params.max_depth,
                min_samples_split=params.min_samples_split,
                min_samples_leaf=params.min_samples_leaf,
            )
            return builder.build(
                matrix[sample_idx], y[sample_idx], feature_names, class_labels
            )

        trees: List[DecisionTree] = []
        if self.n_jobs == 1:
            for i in range(params.n_estimators):
                if cancel_token is not None:
                    cancel_token.raise_if_cancelled()
                trees.append(grow(i))
        else:
            batch_size = max(1, abs(self.n_jobs)) * 4
            with Parallel(n_jobs=self.n_jobs, prefer="threads") as parallel:
                for start in range(0, params.n_estimators, batch_size):
                    if cancel_token is not None:
                        cancel_token.raise_if_cancelled()
                    stop = min(start + batch_size, params.n_estimators)
                    trees.extend(parallel(delayed(grow)(i) for i in range(start, stop)))

        importances = np.mean([t.feature_importances for t in trees], axis=0)
        return Ensemble(
            trees=tuple(trees),
            params=params,
            model_type=model_type,
            feature_names=tuple(feature_names),
            class_labels=tuple(class_labels),
            feature_schema_version=FEATURE_SCHEMA_VERSION,
            trained_at=datetime.now(timezone.utc).isoformat(),
            n_samples=int(len(y)),
            feature_importances=tuple(float(v) for v in importances),
            feature_means=tuple(float(v) for v in matrix.mean(axis=0)),
        )
