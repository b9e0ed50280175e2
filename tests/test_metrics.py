import numpy as np
import pandas as pd
import pytest

from footyforest.errors import InsufficientDataError
from footyforest.features.feature_builder import FEATURE_NAMES
from footyforest.models.evaluate_model import plot_confusion_matrix, plot_feature_importances
from footyforest.models.forest import EnsembleTrainer, ForestParams
from footyforest.models.metrics import compute_classification_metrics, evaluate
from footyforest.models.predictor import explain_prediction, predict


def _ensemble_and_data(n: int = 60):
    rng = np.random.default_rng(0)
    X = pd.DataFrame(rng.uniform(size=(n, len(FEATURE_NAMES))), columns=list(FEATURE_NAMES))
    y = np.where(X[FEATURE_NAMES[0]] > 0.6, "HOME_TEAM", np.where(X[FEATURE_NAMES[1]] > 0.5, "DRAW", "AWAY_TEAM"))
    ensemble = EnsembleTrainer().train(X, list(y), ForestParams(n_estimators=5, max_depth=4))
    return ensemble, X, list(y)


def test_per_class_metrics_from_counts():
    y_true = ["HOME_TEAM", "HOME_TEAM", "DRAW", "AWAY_TEAM"]
    y_pred = ["HOME_TEAM", "DRAW", "DRAW", "HOME_TEAM"]
    proba = np.full((4, 3), 1.0 / 3.0)
    metrics = compute_classification_metrics(y_true, y_pred, proba)

    assert metrics["accuracy"] == 0.5
    assert metrics["correct"] == 2
    home = metrics["per_class"]["HOME_TEAM"]
    assert home["true_positives"] == 1
    assert home["false_positives"] == 1
    assert home["false_negatives"] == 1
    assert home["precision"] == 0.5 and home["recall"] == 0.5 and home["f1"] == 0.5
    away = metrics["per_class"]["AWAY_TEAM"]
    assert away["precision"] == 0.0 and away["recall"] == 0.0 and away["f1"] == 0.0
    assert metrics["baseline_accuracy"] == 0.5
    assert metrics["log_loss"] == pytest.approx(np.log(3))
    assert metrics["confusion_matrix"] == [[1, 1, 0], [0, 1, 0], [1, 0, 0]]


def test_evaluate_is_idempotent():
    ensemble, X, y = _ensemble_and_data()
    first = evaluate(ensemble, X, y)
    second = evaluate(ensemble, X, y)
    assert first.to_dict() == second.to_dict()
    assert 0.0 <= first.accuracy <= 1.0
    assert first.total == 60


def test_evaluate_rejects_tiny_sets():
    ensemble, X, y = _ensemble_and_data()
    with pytest.raises(InsufficientDataError) as excinfo:
        evaluate(ensemble, X.head(9), y[:9])
    assert excinfo.value.available == 9
    assert excinfo.value.required == 10
    assert evaluate(ensemble, X.head(10), y[:10]).total == 10


def test_all_zero_vector_prediction_is_valid():
    ensemble, _, _ = _ensemble_and_data()
    zeros = {name: 0.0 for name in FEATURE_NAMES}
    result = predict(ensemble, zeros, model_name="m", match_id=1)
    assert sum(result.probabilities.values()) == pytest.approx(1.0, abs=1e-6)
    assert result.confidence == max(result.probabilities.values())
    assert result.to_dict()["predicted_class"] == result.predicted_class


def test_predict_rejects_incomplete_or_non_finite_vectors():
    ensemble, _, _ = _ensemble_and_data()
    with pytest.raises(ValueError):
        predict(ensemble, {FEATURE_NAMES[0]: 0.1})
    features = {name: 0.0 for name in FEATURE_NAMES}
    features[FEATURE_NAMES[3]] = float("inf")
    with pytest.raises(ValueError):
        predict(ensemble, features)


def test_explanation_sorted_by_absolute_contribution():
    ensemble, X, _ = _ensemble_and_data()
    explanation = explain_prediction(ensemble, X.iloc[0].to_dict(), top_n=5)
    assert len(explanation) == 5
    magnitudes = [abs(item["contribution"]) for item in explanation]
    assert magnitudes == sorted(magnitudes, reverse=True)


def test_confusion_matrix_plot_is_written(tmp_path):
    ensemble, X, y = _ensemble_and_data()
    report = evaluate(ensemble, X, y)
    out = plot_confusion_matrix(report, tmp_path / "cm.png")
    assert out.exists()


def test_feature_importance_plot_is_written(tmp_path):
    ensemble, _, _ = _ensemble_and_data()
    out = plot_feature_importances(ensemble, tmp_path / "fi.png", top_n=5)
    assert out.exists()
