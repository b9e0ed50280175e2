# path: src/footyforest/models/validation.py
"""
Train/test splitting, contiguous k-fold cross-validation and hyperparameter
search over ensembles.

The search trains one ensemble per (fold, candidate) pair on every fold but
the held-out one, scores it on the held-out fold, keeps the single best pair,
and finally scores that ensemble once on a separate test set that never took
part in the selection.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.metrics import accuracy_score

from footyforest.config import RANDOM_STATE
from footyforest.models.forest import Ensemble, EnsembleTrainer, ForestParams
from footyforest.models.jobs import CancellationToken
from footyforest.utils.logging_utils import get_logger

logger = get_logger(__name__)

MODEL_TYPES: Tuple[str, ...] = ("random_forest", "decision_tree")

# Candidate grids used when hyperparameter search is enabled
PARAM_GRIDS: Dict[str, List[Dict[str, Any]]] = {
    "random_forest": [
        {"n_estimators": 50, "max_depth": 5, "min_samples_split": 2, "min_samples_leaf": 1},
        {"n_estimators": 100, "max_depth": 10, "min_samples_split": 2, "min_samples_leaf": 1},
        {"n_estimators": 150, "max_depth": 15, "min_samples_split": 3, "min_samples_leaf": 2},
        {"n_estimators": 200, "max_depth": 20, "min_samples_split": 5, "min_samples_leaf": 3},
        {"n_estimators": 100, "max_depth": 8, "min_samples_split": 4, "min_samples_leaf": 2},
    ],
    "decision_tree": [
        {"max_depth": 5, "min_samples_split": 2, "min_samples_leaf": 1},
        {"max_depth": 8, "min_samples_split": 4, "min_samples_leaf": 2},
        {"max_depth": 10, "min_samples_split": 2, "min_samples_leaf": 1},
    ],
}

# Single candidate used when search is disabled
DEFAULT_PARAMS: Dict[str, Dict[str, Any]] = {
    "random_forest": {"n_estimators": 100, "max_depth": 10, "min_samples_split": 2, "min_samples_leaf": 1},
    "decision_tree": {"max_depth": 10, "min_samples_split": 2, "min_samples_leaf": 1},
}

# Settings a model type always imposes on its candidates
MODEL_TYPE_OVERRIDES: Dict[str, Dict[str, Any]] = {
    "random_forest": {"bootstrap": True},
    "decision_tree": {"n_estimators": 1, "bootstrap": False},
}


def candidate_params(
    model_type: str,
    search: bool = True,
    random_state: int = RANDOM_STATE,
    overrides: Optional[Sequence[Mapping[str, Any]]] = None,
) -> List[ForestParams]:
    """
    Hyperparameter candidates for a model type.

    `overrides`, when given, replaces the built-in grid.
    """
    if model_type not in MODEL_TYPES:
        raise ValueError(f"Unsupported model type: {model_type}")

    if overrides:
        raw = [dict(params) for params in overrides]
    elif search:
        raw = [dict(params) for params in PARAM_GRIDS[model_type]]
    else:
        raw = [dict(DEFAULT_PARAMS[model_type])]

    candidates = []
    for params in raw:
        params.setdefault("random_state", random_state)
        params.update(MODEL_TYPE_OVERRIDES[model_type])
        candidates.append(ForestParams.from_dict(params))
    return candidates


def split_train_test(
    n_samples: int, test_size: float, random_state: int = RANDOM_STATE
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Seeded shuffle followed by a cut at floor(n * (1 - test_size)).

    Returns (train_indices, test_indices).
    """
    if not 0.0 <= test_size < 1.0:
        raise ValueError("test_size must be in [0, 1)")
    permutation = np.random.default_rng(random_state).permutation(n_samples)
    cut = int(np.floor(n_samples * (1.0 - test_size)))
    return permutation[:cut], permutation[cut:]


def contiguous_folds(n_samples: int, k: int) -> List[np.ndarray]:
    """
    Split range(n_samples) into k contiguous, disjoint folds of size
    n_samples // k; the last fold absorbs the remainder.
    """
    if k < 2:
        raise ValueError("k must be at least 2")
    if k > n_samples:
        raise ValueError(f"Cannot split {n_samples} samples into {k} folds")
    fold_size = n_samples // k
    folds = []
    for fold in range(k):
        start = fold * fold_size
        stop = n_samples if fold == k - 1 else start + fold_size
        folds.append(np.arange(start, stop))
    return folds


@dataclass
class FoldResult:
    fold: int
    params: Dict[str, Any]
    accuracy: float
    train_size: int
    val_size: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fold": self.fold,
            "params": self.params,
            "accuracy": self.accuracy,
            "train_size": self.train_size,
            "val_size": self.val_size,
        }


@dataclass
class SearchResult:
    model_type: str
    fold_results: List[FoldResult] = field(default_factory=list)
    best_ensemble: Optional[Ensemble] = None
    best_score: float = 0.0
    best_params: Optional[Dict[str, Any]] = None
    test_accuracy: Optional[float] = None

    @property
    def average_accuracy(self) -> Optional[float]:
        if not self.fold_results:
            return None
        return float(np.mean([r.accuracy for r in self.fold_results]))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model_type": self.model_type,
            "cross_validation": {
                "folds": len({r.fold for r in self.fold_results}),
                "results": [r.to_dict() for r in self.fold_results],
                "average_accuracy": self.average_accuracy,
            },
            "best_score": self.best_score,
            "best_params": self.best_params,
            "test_accuracy": self.test_accuracy,
        }


class HyperparameterSearch:
    """Contiguous k-fold cross-validation over a list of candidates."""

    def __init__(self, trainer: EnsembleTrainer | None = None):
        self.trainer = trainer if trainer is not None else EnsembleTrainer()

    def search(
        self,
        X_train: pd.DataFrame,
        y_train: Sequence[str],
        X_test: pd.DataFrame,
        y_test: Sequence[str],
        candidates: Sequence[ForestParams],
        k: int,
        model_type: str = "random_forest",
        cancel_token: Optional[CancellationToken] = None,
    ) -> SearchResult:
        y_train = np.asarray(list(y_train), dtype=object)
        y_test = np.asarray(list(y_test), dtype=object)
        folds = contiguous_folds(len(X_train), k)
        result = SearchResult(model_type=model_type)
        best_ensemble: Optional[Ensemble] = None

        for fold, val_idx in enumerate(folds, start=1):
            logger.info("%s CV fold %d/%d", model_type, fold, k)
            train_idx = np.concatenate(
                [idx for other, idx in enumerate(folds, start=1) if other != fold]
            )
            X_fold_train = X_train.iloc[train_idx]
            X_fold_val = X_train.iloc[val_idx]
            y_fold_val = y_train[val_idx]

            for params in candidates:
                if cancel_token is not None:
                    cancel_token.raise_if_cancelled()
                try:
                    ensemble = self.trainer.train(
                        X_fold_train,
                        y_train[train_idx],
                        params,
                        model_type=model_type,
                        cancel_token=cancel_token,
                    )
                    predictions = ensemble.predict_frame(X_fold_val)
                except ValueError:
                    logger.error(
                        "Error in CV fold %d with params %s",
                        fold,
                        params.to_dict(),
                        exc_info=True,
                    )
                    continue

                accuracy = float(accuracy_score(y_fold_val, predictions))
                result.fold_results.append(
                    FoldResult(
                        fold=fold,
                        params=params.to_dict(),
                        accuracy=accuracy,
                        train_size=len(train_idx),
                        val_size=len(val_idx),
                    )
                )
                if best_ensemble is None or accuracy > result.best_score:
                    best_ensemble = ensemble
                    result.best_score = accuracy
                    result.best_params = params.to_dict()

        if best_ensemble is None:
            logger.warning("No %s candidate could be trained.", model_type)
            return result

        if len(X_test) > 0:
            test_predictions = best_ensemble.predict_frame(X_test)
            result.test_accuracy = float(accuracy_score(y_test, test_predictions))

        result.best_ensemble = best_ensemble.with_scores(
            cv_score=result.best_score, test_score=result.test_accuracy
        )
        logger.info(
            "%s best CV accuracy %.3f with %s; test accuracy %s",
            model_type,
            result.best_score,
            result.best_params,
            "n/a" if result.test_accuracy is None else f"{result.test_accuracy:.3f}",
        )
        return result
