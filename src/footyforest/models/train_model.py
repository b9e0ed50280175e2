# path: src/footyforest/models/train_model.py
"""
Train FootyForest models on historical matches.

Usage (from project root):

    footyforest-train --data data/raw/matches.csv --competition PL

This will:
- Select finished matches (season / competition / lookback filters)
- Build normalized feature vectors and outcome labels
- Split into a seeded train/test partition
- Run k-fold cross-validation (optionally over a hyperparameter grid) for
  each requested model type
- Save the best ensemble of each model type and append the run to the
  training history
"""

from __future__ import annotations

import argparse
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from footyforest.config import (
    DEFAULT_CV_FOLDS,
    DEFAULT_DAYS_BACK,
    DEFAULT_TEST_SIZE,
    DEFAULT_TRAINING_BUDGET_SECONDS,
    MIN_TRAINING_SAMPLES,
    RANDOM_STATE,
)
from footyforest.data.data_loader import DataSelection, MatchRepository
from footyforest.errors import InsufficientDataError
from footyforest.features.feature_builder import FeatureExtractor
from footyforest.features.feature_cache import FeatureCache
from footyforest.models.forest import Ensemble, EnsembleTrainer
from footyforest.models.jobs import CancellationToken
from footyforest.models.model_store import ModelStore, TrainingHistory
from footyforest.models.validation import (
    MODEL_TYPES,
    HyperparameterSearch,
    candidate_params,
    split_train_test,
)
from footyforest.utils.logging_utils import get_logger, set_log_level
from footyforest.utils.paths import get_training_history_path

logger = get_logger(__name__)


class TrainingOptions(BaseModel):
    """Options of one training invocation."""

    model_types: List[str] = Field(default_factory=lambda: ["random_forest"])
    cross_validation_folds: int = Field(default=DEFAULT_CV_FOLDS, ge=2)
    hyperparameter_search: bool = True
    candidate_params: Optional[List[Dict[str, Any]]] = None
    test_size: float = Field(default=DEFAULT_TEST_SIZE, ge=0.0, lt=1.0)
    random_state: int = RANDOM_STATE
    max_training_seconds: Optional[float] = Field(
        default=DEFAULT_TRAINING_BUDGET_SECONDS, gt=0
    )
    n_jobs: int = 1
    min_training_samples: int = Field(default=MIN_TRAINING_SAMPLES, ge=1)
    data: DataSelection = Field(default_factory=DataSelection)

    @field_validator("model_types")
    @classmethod
    def _check_model_types(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("At least one model type is required")
        unknown = [m for m in value if m not in MODEL_TYPES]
        if unknown:
            raise ValueError(f"Unsupported model types: {unknown}")
        return list(dict.fromkeys(value))


def model_name_for(model_type: str, competition_id: Any = None) -> str:
    """Name under which the best model of a run is saved."""
    scope = "all" if competition_id is None else str(competition_id)
    return f"{scope}_{model_type}"


@dataclass
class TrainingRunResult:
    run_id: str
    success: bool
    duration_seconds: float
    results: Dict[str, Dict[str, Any]]
    model_names: Dict[str, str]
    data_stats: Dict[str, int]
    best_models: Dict[str, Ensemble] = field(default_factory=dict, repr=False)

    def average_cv_accuracy(self, model_type: str) -> Optional[float]:
        return self.results[model_type]["cross_validation"]["average_accuracy"]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "success": self.success,
            "duration_seconds": self.duration_seconds,
            "results": self.results,
            "model_names": self.model_names,
            "data_stats": self.data_stats,
        }


def run_training(
    options: TrainingOptions,
    repository: MatchRepository,
    model_store: ModelStore,
    history: TrainingHistory,
    extractor: FeatureExtractor | None = None,
    cancel_token: CancellationToken | None = None,
) -> TrainingRunResult:
    """
    Run the end-to-end training process.

    Models are persisted only after every requested model type finished, so a
    timeout or failure leaves the model store untouched.

    Raises
    ------
    InsufficientDataError
        Fewer usable samples than `options.min_training_samples`.
    TrainingTimeoutError
        The budget ran out (or the token was cancelled) before completion.
    """
    token = cancel_token or CancellationToken(options.max_training_seconds)
    started = time.monotonic()
    run_id = str(uuid.uuid4())
    logger.info("Starting model training run %s: %s", run_id, options.model_dump(mode="json"))

    matches = repository.select_matches(options.data)
    if len(matches) < options.min_training_samples:
        raise InsufficientDataError(
            f"Insufficient training data: {len(matches)} matches. Need at least "
            f"{options.min_training_samples} matches for reliable training.",
            available=len(matches),
            required=options.min_training_samples,
        )

    if extractor is None:
        extractor = FeatureExtractor(repository, cache=FeatureCache())
    dataset = extractor.build_labeled_samples(matches)
    if len(dataset) < options.min_training_samples:
        raise InsufficientDataError(
            f"Insufficient training data after feature generation: {len(dataset)} "
            f"samples ({len(dataset.skipped)} skipped), need "
            f"{options.min_training_samples}.",
            available=len(dataset),
            required=options.min_training_samples,
            skipped=len(dataset.skipped),
        )
    token.raise_if_cancelled()

    train_idx, test_idx = split_train_test(
        len(dataset), options.test_size, options.random_state
    )
    X_train = dataset.features.iloc[train_idx].reset_index(drop=True)
    y_train = dataset.labels.iloc[train_idx].tolist()
    X_test = dataset.features.iloc[test_idx].reset_index(drop=True)
    y_test = dataset.labels.iloc[test_idx].tolist()
    logger.info("Train/test split: train=%d, test=%d", len(X_train), len(X_test))
    if len(X_train) < options.cross_validation_folds:
        raise InsufficientDataError(
            f"Training split has {len(X_train)} samples, fewer than the "
            f"{options.cross_validation_folds} cross-validation folds.",
            available=len(X_train),
            required=options.cross_validation_folds,
        )

    search = HyperparameterSearch(EnsembleTrainer(n_jobs=options.n_jobs))
    results: Dict[str, Dict[str, Any]] = {}
    best_models: Dict[str, Ensemble] = {}
    model_names: Dict[str, str] = {}

    for model_type in options.model_types:
        token.raise_if_cancelled()
        logger.info("Training %s model...", model_type)
        candidates = candidate_params(
            model_type,
            search=options.hyperparameter_search,
            random_state=options.random_state,
            overrides=options.candidate_params,
        )
        outcome = search.search(
            X_train,
            y_train,
            X_test,
            y_test,
            candidates,
            k=options.cross_validation_folds,
            model_type=model_type,
            cancel_token=token,
        )
        summary = outcome.to_dict()
        if outcome.best_ensemble is None:
            summary.update(success=False, error="No candidate could be trained")
        else:
            name = model_name_for(model_type, options.data.competition_id)
            summary.update(success=True, model_name=name)
            best_models[model_type] = outcome.best_ensemble
            model_names[model_type] = name
        results[model_type] = summary

    token.raise_if_cancelled()
    for model_type, ensemble in best_models.items():
        model_store.save(ensemble, model_names[model_type])

    duration = time.monotonic() - started
    data_stats = {
        "total_matches": len(matches),
        "samples": len(dataset),
        "skipped": len(dataset.skipped),
        "train_size": len(X_train),
        "test_size": len(X_test),
    }
    history.append(
        {
            "run_id": run_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "duration_seconds": duration,
            "options": options.model_dump(mode="json"),
            "results": results,
            "model_names": model_names,
            "data_stats": data_stats,
        }
    )
    logger.info("Model training completed in %.1fs", duration)

    return TrainingRunResult(
        run_id=run_id,
        success=bool(best_models),
        duration_seconds=duration,
        results=results,
        model_names=model_names,
        data_stats=data_stats,
        best_models=best_models,
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Train FootyForest models.")
    parser.add_argument("--data", default=None, help="Raw matches CSV (defaults to config).")
    parser.add_argument("--models-dir", default=None, help="Model artifact directory.")
    parser.add_argument(
        "--model-type",
        action="append",
        choices=MODEL_TYPES,
        dest="model_types",
        help="Model type to train (repeatable). Default: random_forest.",
    )
    parser.add_argument("--competition", default=None, help="Competition id filter.")
    parser.add_argument("--season", type=int, default=None, help="Season start year filter.")
    parser.add_argument("--days-back", type=int, default=DEFAULT_DAYS_BACK, help="Lookback window in days.")
    parser.add_argument("--folds", type=int, default=DEFAULT_CV_FOLDS)
    parser.add_argument("--no-search", action="store_true", help="Disable hyperparameter search.")
    parser.add_argument("--test-size", type=float, default=DEFAULT_TEST_SIZE)
    parser.add_argument("--seed", type=int, default=RANDOM_STATE)
    parser.add_argument("--budget", type=float, default=DEFAULT_TRAINING_BUDGET_SECONDS,
                        help="Training budget in seconds.")
    parser.add_argument("--n-jobs", type=int, default=1)
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()
    set_log_level(args.log_level)

    options = TrainingOptions(
        model_types=args.model_types or ["random_forest"],
        cross_validation_folds=args.folds,
        hyperparameter_search=not args.no_search,
        test_size=args.test_size,
        random_state=args.seed,
        max_training_seconds=args.budget,
        n_jobs=args.n_jobs,
        data=DataSelection(
            season=args.season,
            competition_id=args.competition,
            days_back=args.days_back,
        ),
    )
    store = ModelStore(args.models_dir)
    history = TrainingHistory(get_training_history_path(store.models_dir))
    result = run_training(options, MatchRepository.from_csv(args.data), store, history)

    print("Training results:")
    for model_type, summary in result.results.items():
        avg = summary["cross_validation"]["average_accuracy"]
        print(
            f"  {model_type}: model={summary.get('model_name')} "
            f"cv_avg={avg if avg is None else round(avg, 4)} "
            f"best_cv={summary['best_score']:.4f} test={summary['test_accuracy']}"
        )


if __name__ == "__main__":
    main()
