import numpy as np
import pandas as pd
import pytest

from footyforest.data.data_loader import DataSelection, MatchRepository
from footyforest.errors import InsufficientDataError, MatchNotFoundError, ModelNotFoundError
from footyforest.features.feature_builder import FEATURE_NAMES
from footyforest.models.forest import EnsembleTrainer, ForestParams
from footyforest.service import PredictionService


@pytest.fixture
def service(repository, model_store, history):
    svc = PredictionService(repository, model_store=model_store, history=history)
    yield svc
    svc.close()


def test_predict_without_model_for_competition_raises(service):
    with pytest.raises(ModelNotFoundError):
        service.predict(1100)
    with pytest.raises(ModelNotFoundError):
        service.predict(1100, model_name="PL_random_forest")


def test_predict_unknown_match_raises(service):
    with pytest.raises(MatchNotFoundError):
        service.predict(123)


def test_train_predict_evaluate_cycle(service, fast_options):
    run = service.train_models(fast_options)
    assert run.success

    assert [m.name for m in service.list_models()] == ["PL_random_forest"]

    result = service.predict(1100)
    assert result.model_name == "PL_random_forest"
    assert result.match_id == 1100
    assert sum(result.probabilities.values()) == pytest.approx(1.0, abs=1e-6)
    assert result.confidence == result.probabilities[result.predicted_class]

    explanation = service.explain(1100, top_n=3)
    assert len(explanation) == 3

    report = service.evaluate_model(
        "PL_random_forest", DataSelection(days_back=None, min_matches_per_team=0)
    )
    assert report.total == 150
    assert report.model_name == "PL_random_forest"

    stats = service.get_training_stats()
    assert stats["total_training_runs"] == 1
    assert "random_forest" in stats["best_accuracy_by_model_type"]

    service.delete_model("PL_random_forest")
    assert service.list_models() == []
    with pytest.raises(ModelNotFoundError):
        service.predict(1100)


def test_evaluate_with_too_few_matches(service, fast_options):
    service.train_models(fast_options)
    with pytest.raises(InsufficientDataError):
        service.evaluate_model(
            "PL_random_forest", DataSelection(days_back=None, limit=5, min_matches_per_team=0)
        )


def test_generate_features_is_normalized(service):
    features = service.generate_features(1100)
    assert tuple(features) == FEATURE_NAMES
    assert all(-1.0 <= v <= 1.0 for v in features.values())


def test_compare_models_reports_unreadable_models(service, fast_options, model_store):
    service.train_models(fast_options)
    (model_store.models_dir / "broken.joblib").write_bytes(b"garbage")

    comparison = {entry["name"]: entry for entry in service.compare_models()}
    assert comparison["PL_random_forest"]["model_type"] == "random_forest"
    assert comparison["broken"]["error"]["kind"] == "serialization"


def test_submit_training_returns_future(make_league_df, model_store, history, fast_options):
    service = PredictionService(
        MatchRepository(make_league_df(99)), model_store=model_store, history=history
    )
    try:
        future = service.submit_training(fast_options)
        with pytest.raises(InsufficientDataError):
            future.result(timeout=60)
    finally:
        service.close()

    service = PredictionService(
        MatchRepository(make_league_df(120)), model_store=model_store, history=history
    )
    try:
        run = service.submit_training(fast_options).result(timeout=300)
    finally:
        service.close()
    assert run.success
    assert model_store.exists("PL_random_forest")


def test_model_of_a_longer_competition_id_is_not_picked(service, model_store):
    rng = np.random.default_rng(0)
    X = pd.DataFrame(rng.uniform(size=(30, len(FEATURE_NAMES))), columns=list(FEATURE_NAMES))
    y = rng.choice(["HOME_TEAM", "DRAW", "AWAY_TEAM"], size=30).tolist()
    ensemble = EnsembleTrainer().train(X, y, ForestParams(n_estimators=2, max_depth=2))
    model_store.save(ensemble, "PL_B_random_forest")

    with pytest.raises(ModelNotFoundError):
        service.resolve_model_name("PL")
    assert service.resolve_model_name("PL_B") == "PL_B_random_forest"

    model_store.save(ensemble, "PL_decision_tree")
    assert service.predict(1100).model_name == "PL_decision_tree"
