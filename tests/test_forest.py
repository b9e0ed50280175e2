import numpy as np
import pandas as pd
import pytest

from footyforest.errors import TrainingTimeoutError
from footyforest.models.forest import Ensemble, EnsembleTrainer, ForestParams
from footyforest.models.jobs import CancellationToken
from footyforest.models.tree import TreeBuilder

LABELS = ("HOME_TEAM", "DRAW", "AWAY_TEAM")
NAMES = ["f0", "f1", "f2"]


def _toy_data(n: int = 90, seed: int = 1):
    rng = np.random.default_rng(seed)
    X = pd.DataFrame(rng.normal(size=(n, 3)), columns=NAMES)
    y = np.where(X["f0"] > 0.3, "HOME_TEAM", np.where(X["f1"] > 0.0, "DRAW", "AWAY_TEAM"))
    return X, list(y)


def _train(params: ForestParams, n_jobs: int = 1, **kwargs) -> Ensemble:
    X, y = _toy_data()
    return EnsembleTrainer(n_jobs=n_jobs).train(
        X, y, params, feature_names=NAMES, class_labels=LABELS, **kwargs
    )


def test_probabilities_sum_to_one_and_confidence_is_max():
    ensemble = _train(ForestParams(n_estimators=7, max_depth=4))
    X, _ = _toy_data(n=20, seed=9)
    for row in X.to_dict(orient="records"):
        proba = ensemble.predict_proba(row)
        assert set(proba) == set(LABELS)
        assert sum(proba.values()) == pytest.approx(1.0, abs=1e-6)
        assert proba[ensemble.predict(row)] == max(proba.values())


def test_training_is_deterministic_for_a_seed():
    params = ForestParams(n_estimators=5, max_depth=4, random_state=7)
    first = _train(params)
    second = _train(params)
    assert first.trees == second.trees
    assert first.feature_importances == second.feature_importances


def test_thread_parallel_training_matches_sequential():
    params = ForestParams(n_estimators=6, max_depth=3, random_state=11)
    assert _train(params, n_jobs=2).trees == _train(params, n_jobs=1).trees


def test_frame_predictions_match_row_predictions():
    ensemble = _train(ForestParams(n_estimators=5, max_depth=3))
    X, _ = _toy_data(n=15, seed=4)
    rows = X.to_dict(orient="records")
    assert ensemble.predict_frame(X) == [ensemble.predict(r) for r in rows]
    proba = ensemble.predict_proba_frame(X)
    assert proba.shape == (15, 3)
    assert np.allclose(proba.sum(axis=1), 1.0)


def test_single_tree_without_bootstrap_sees_all_samples():
    ensemble = _train(ForestParams(n_estimators=1, max_depth=3, bootstrap=False))
    assert ensemble.n_estimators == 1
    assert ensemble.trees[0].root.n_samples == 90


def test_vote_ties_go_to_first_voted_class():
    builder = TreeBuilder(max_depth=0)
    away = builder.build(np.zeros((1, 3)), np.array([2]), NAMES, LABELS)
    home = builder.build(np.zeros((1, 3)), np.array([0]), NAMES, LABELS)
    ensemble = Ensemble(
        trees=(away, home),
        params=ForestParams(n_estimators=2),
        model_type="random_forest",
        feature_names=tuple(NAMES),
        class_labels=LABELS,
        feature_schema_version=1,
        trained_at="2024-01-01T00:00:00+00:00",
        n_samples=2,
        feature_importances=(0.0, 0.0, 0.0),
        feature_means=(0.0, 0.0, 0.0),
    )
    features = {"f0": 0.0, "f1": 0.0, "f2": 0.0}
    assert ensemble.predict(features) == "AWAY_TEAM"
    assert ensemble.predict_proba(features) == {"HOME_TEAM": 0.5, "DRAW": 0.0, "AWAY_TEAM": 0.5}


def test_cancelled_token_stops_training():
    token = CancellationToken()
    token.cancel()
    with pytest.raises(TrainingTimeoutError):
        _train(ForestParams(n_estimators=3), cancel_token=token)


def test_expired_budget_stops_training():
    now = [0.0]
    token = CancellationToken(budget_seconds=5.0, clock=lambda: now[0])
    now[0] = 6.0
    with pytest.raises(TrainingTimeoutError) as excinfo:
        _train(ForestParams(n_estimators=3), cancel_token=token)
    assert excinfo.value.budget_seconds == 5.0
    assert excinfo.value.to_dict()["kind"] == "training_timeout"


def test_forest_params_reject_unknown_keys():
    with pytest.raises(ValueError):
        ForestParams.from_dict({"n_trees": 10})
    params = ForestParams.from_dict({"n_estimators": 3, "max_depth": 2})
    assert ForestParams.from_dict(params.to_dict()) == params


def test_unknown_labels_are_rejected():
    X, _ = _toy_data(n=3)
    with pytest.raises(ValueError):
        EnsembleTrainer().train(
            X, ["HOME_TEAM", "WIN", "DRAW"], ForestParams(n_estimators=1),
            feature_names=NAMES, class_labels=LABELS,
        )
