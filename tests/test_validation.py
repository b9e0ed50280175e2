import numpy as np
import pandas as pd
import pytest

from footyforest.features.feature_builder import FEATURE_NAMES
from footyforest.models.forest import EnsembleTrainer, ForestParams
from footyforest.models.validation import (
    PARAM_GRIDS,
    HyperparameterSearch,
    candidate_params,
    contiguous_folds,
    split_train_test,
)


@pytest.mark.parametrize("n, k", [(10, 2), (23, 5), (100, 7), (5, 5)])
def test_folds_are_disjoint_and_cover_every_sample_once(n, k):
    folds = contiguous_folds(n, k)
    assert len(folds) == k
    combined = np.concatenate(folds)
    assert sorted(combined.tolist()) == list(range(n))
    assert len(set(combined.tolist())) == n
    for fold in folds[:-1]:
        assert len(fold) == n // k
        assert np.all(np.diff(fold) == 1)
    assert len(folds[-1]) == n // k + n % k


def test_fold_count_must_be_valid():
    with pytest.raises(ValueError):
        contiguous_folds(10, 1)
    with pytest.raises(ValueError):
        contiguous_folds(3, 4)


def test_train_test_split_is_seeded_and_complete():
    train, test = split_train_test(100, 0.2, random_state=5)
    assert len(train) == 80 and len(test) == 20
    assert sorted(np.concatenate([train, test]).tolist()) == list(range(100))
    again_train, _ = split_train_test(100, 0.2, random_state=5)
    assert train.tolist() == again_train.tolist()


def test_candidate_params_per_model_type():
    forest = candidate_params("random_forest", search=True, random_state=3)
    assert len(forest) == len(PARAM_GRIDS["random_forest"]) == 5
    assert all(p.bootstrap and p.random_state == 3 for p in forest)

    trees = candidate_params("decision_tree", search=True)
    assert len(trees) == 3
    assert all(p.n_estimators == 1 and not p.bootstrap for p in trees)

    assert len(candidate_params("random_forest", search=False)) == 1
    custom = candidate_params("random_forest", overrides=[{"n_estimators": 4}])
    assert custom[0].n_estimators == 4

    with pytest.raises(ValueError):
        candidate_params("neural_network")


def _dataset(n: int, seed: int):
    rng = np.random.default_rng(seed)
    X = pd.DataFrame(rng.uniform(size=(n, len(FEATURE_NAMES))), columns=list(FEATURE_NAMES))
    signal = X[FEATURE_NAMES[0]] - X[FEATURE_NAMES[26]]
    y = np.where(signal > 0.2, "HOME_TEAM", np.where(signal < -0.2, "AWAY_TEAM", "DRAW"))
    return X, list(y)


def test_search_reports_folds_best_and_test_scores():
    X_train, y_train = _dataset(60, seed=0)
    X_test, y_test = _dataset(15, seed=1)
    candidates = candidate_params(
        "random_forest", overrides=[{"n_estimators": 3, "max_depth": 2}, {"n_estimators": 3, "max_depth": 4}]
    )
    result = HyperparameterSearch(EnsembleTrainer()).search(
        X_train, y_train, X_test, y_test, candidates, k=3
    )

    assert len(result.fold_results) == 6
    assert {r.fold for r in result.fold_results} == {1, 2, 3}
    assert all(r.train_size + r.val_size == 60 for r in result.fold_results)
    assert result.best_score == max(r.accuracy for r in result.fold_results)
    assert 0.0 <= result.average_accuracy <= 1.0
    assert 0.0 <= result.test_accuracy <= 1.0
    assert result.best_ensemble.cv_score == result.best_score
    assert result.best_ensemble.test_score == result.test_accuracy

    summary = result.to_dict()
    assert summary["cross_validation"]["folds"] == 3
    assert summary["best_params"] in [c.to_dict() for c in candidates]


def test_failed_candidates_are_skipped():
    X_train, y_train = _dataset(30, seed=2)
    X_test, y_test = _dataset(5, seed=3)
    # Non-finite training values make every candidate fail with ValueError
    X_train.iloc[0, 0] = np.nan
    result = HyperparameterSearch().search(
        X_train, y_train, X_test, y_test, candidate_params("decision_tree", search=False), k=2
    )
    # Only the fold whose training part excludes the NaN row can succeed
    assert [r.fold for r in result.fold_results] == [1]
    assert result.best_ensemble is not None
