"""
PredictionService: the entry point the surrounding system calls into.

It wires the match repository, feature extractor, model store and training
history together and exposes feature generation, training, prediction,
evaluation and model management.
"""

from __future__ import annotations

from concurrent.futures import Future
from typing import Any, Dict, List, Optional

from footyforest.config import MIN_EVALUATION_SAMPLES, PREDICTION_CONFIDENCE_THRESHOLD
from footyforest.data.data_loader import DataSelection, MatchRepository
from footyforest.errors import FootyForestError, ModelNotFoundError
from footyforest.features.feature_builder import FeatureExtractor, FeatureVector
from footyforest.features.feature_cache import FeatureCache
from footyforest.models.evaluate_model import evaluate_on_matches
from footyforest.models.jobs import CancellationToken, TrainingJobRunner
from footyforest.models.metrics import EvaluationReport
from footyforest.models.model_store import ModelInfo, ModelStore, TrainingHistory
from footyforest.models.predictor import PredictionResult, explain_prediction, predict
from footyforest.models.train_model import (
    TrainingOptions,
    TrainingRunResult,
    model_name_for,
    run_training,
)
from footyforest.models.validation import MODEL_TYPES
from footyforest.utils.logging_utils import get_logger
from footyforest.utils.paths import get_training_history_path

logger = get_logger(__name__)


class PredictionService:
    """
    Facade over the FootyForest core.

    Parameters
    ----------
    repository : MatchRepository
        Read-only historical match data.
    model_store : ModelStore | None
        Where models are persisted. Defaults to the configured models dir.
    history : TrainingHistory | None
        Training-run log. Defaults to the log inside the models dir.
    feature_extractor : FeatureExtractor | None
        Defaults to an extractor over `repository` with a fresh FeatureCache.
    max_workers : int
        Size of the worker pool used by `submit_training`.
    """

    def __init__(
        self,
        repository: MatchRepository,
        model_store: ModelStore | None = None,
        history: TrainingHistory | None = None,
        feature_extractor: FeatureExtractor | None = None,
        max_workers: int = 2,
    ):
        self.repository = repository
        self.model_store = model_store if model_store is not None else ModelStore()
        if history is None:
            history = TrainingHistory(get_training_history_path(self.model_store.models_dir))
        self.history = history
        if feature_extractor is None:
            feature_extractor = FeatureExtractor(repository, cache=FeatureCache())
        self.feature_extractor = feature_extractor
        self._max_workers = max_workers
        self._runner: TrainingJobRunner | None = None

    # ------------------------------------------------------------------
    # Features
    # ------------------------------------------------------------------

    def generate_features(self, match_id: Any, as_of: Any = None) -> FeatureVector:
        """Normalized feature vector of a stored match."""
        return self.feature_extractor.generate_features(match_id, as_of=as_of)

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def train_models(
        self,
        options: TrainingOptions | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> TrainingRunResult:
        if options is None:
            options = TrainingOptions()
        return run_training(
            options,
            self.repository,
            self.model_store,
            self.history,
            extractor=self.feature_extractor,
            cancel_token=cancel_token,
        )

    def submit_training(
        self,
        options: TrainingOptions | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> Future:
        """Run `train_models` on the worker pool; the future holds its result."""
        if self._runner is None:
            self._runner = TrainingJobRunner(max_workers=self._max_workers)
        return self._runner.submit(self.train_models, options, cancel_token)

    def close(self) -> None:
        if self._runner is not None:
            self._runner.shutdown(wait=True)
            self._runner = None

    # ------------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------------

    def resolve_model_name(self, competition_id: Any) -> str:
        """Most recently saved model trained for a competition."""
        names = [model_name_for(model_type, competition_id) for model_type in MODEL_TYPES]
        latest = self.model_store.latest(names)
        if latest is None:
            raise ModelNotFoundError(
                f"No trained model found for competition {competition_id}",
                competition_id=competition_id,
            )
        return latest.name

    def predict(self, match_id: Any, model_name: Optional[str] = None) -> PredictionResult:
        """
        Predict the outcome of a stored match.

        Raises
        ------
        MatchNotFoundError
            If the match does not exist.
        ModelNotFoundError
            If `model_name` is unknown, or no model exists for the match's
            competition when no name is given.
        """
        match = self.repository.get_match(match_id)
        if model_name is None:
            model_name = self.resolve_model_name(match.competition_id)
        ensemble = self.model_store.load(model_name)
        features = self.generate_features(match_id)

        result = predict(ensemble, features, model_name=model_name, match_id=match_id)
        if result.confidence < PREDICTION_CONFIDENCE_THRESHOLD:
            logger.warning(
                "Low confidence prediction for match %s: %s (%.2f)",
                match_id,
                result.predicted_class,
                result.confidence,
            )
        logger.info(
            "Prediction for match %s with %s: %s", match_id, model_name, result.predicted_class
        )
        return result

    def explain(
        self, match_id: Any, model_name: Optional[str] = None, top_n: int = 8
    ) -> List[Dict[str, Any]]:
        """Top feature contributions behind the prediction of a match."""
        if model_name is None:
            model_name = self.resolve_model_name(
                self.repository.get_match(match_id).competition_id
            )
        ensemble = self.model_store.load(model_name)
        return explain_prediction(ensemble, self.generate_features(match_id), top_n=top_n)

    # ------------------------------------------------------------------
    # Evaluation and model management
    # ------------------------------------------------------------------

    def evaluate_model(
        self,
        model_name: str,
        data: DataSelection | None = None,
        min_samples: int = MIN_EVALUATION_SAMPLES,
    ) -> EvaluationReport:
        ensemble = self.model_store.load(model_name)
        return evaluate_on_matches(
            ensemble,
            self.repository,
            data,
            extractor=self.feature_extractor,
            min_samples=min_samples,
            model_name=model_name,
        )

    def list_models(self) -> List[ModelInfo]:
        return self.model_store.list()

    def delete_model(self, name: str) -> None:
        self.model_store.delete(name)

    def get_training_stats(self) -> Dict[str, Any]:
        return self.history.stats()

    def compare_models(self) -> List[Dict[str, Any]]:
        """Metadata of every stored model; unreadable ones carry an error entry."""
        comparison = []
        for info in self.model_store.list():
            try:
                comparison.append(self.model_store.describe(info.name))
            except FootyForestError as exc:
                logger.warning("Could not describe model %s: %s", info.name, exc)
                comparison.append({**info.to_dict(), "error": exc.to_dict()})
        return comparison
