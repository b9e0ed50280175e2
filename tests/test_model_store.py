import json
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from footyforest.errors import ModelNotFoundError, SerializationError
from footyforest.features.feature_builder import FEATURE_NAMES
from footyforest.models.forest import EnsembleTrainer, ForestParams
from footyforest.models.jobs import TrainingJobRunner
from footyforest.models.model_store import ModelStore, TrainingHistory
from footyforest.utils.paths import get_model_path


def _ensemble(seed: int = 0):
    rng = np.random.default_rng(seed)
    X = pd.DataFrame(rng.uniform(size=(40, len(FEATURE_NAMES))), columns=list(FEATURE_NAMES))
    y = rng.choice(["HOME_TEAM", "DRAW", "AWAY_TEAM"], size=40).tolist()
    return EnsembleTrainer().train(X, y, ForestParams(n_estimators=4, max_depth=3)), X


def test_save_load_round_trip_predicts_identically(model_store: ModelStore):
    ensemble, X = _ensemble()
    path = model_store.save(ensemble, "PL_random_forest")
    assert path.exists()
    assert path == get_model_path("PL_random_forest", model_store.models_dir)

    loaded = model_store.load("PL_random_forest")
    for row in X.head(10).to_dict(orient="records"):
        assert loaded.predict(row) == ensemble.predict(row)
        assert loaded.predict_proba(row) == ensemble.predict_proba(row)
    assert loaded.params == ensemble.params
    assert loaded.feature_names == ensemble.feature_names


def test_load_unknown_model_raises_not_found(model_store: ModelStore):
    with pytest.raises(ModelNotFoundError) as excinfo:
        model_store.load("missing")
    assert excinfo.value.model_name == "missing"


def test_corrupt_artifact_raises_serialization_error(model_store: ModelStore):
    (model_store.models_dir / "broken.joblib").write_bytes(b"not a joblib file")
    with pytest.raises(SerializationError):
        model_store.load("broken")


def test_list_and_delete(model_store: ModelStore):
    ensemble, _ = _ensemble()
    model_store.save(ensemble, "PL_random_forest")
    model_store.save(ensemble, "all_decision_tree")

    names = [m.name for m in model_store.list()]
    assert names == ["PL_random_forest", "all_decision_tree"]
    info = model_store.list()[0]
    assert info.size_bytes > 0
    assert model_store.latest(["PL_random_forest", "PL_decision_tree"]).name == "PL_random_forest"
    assert model_store.latest(["BL1_random_forest"]) is None

    model_store.delete("PL_random_forest")
    assert not model_store.exists("PL_random_forest")
    with pytest.raises(ModelNotFoundError):
        model_store.delete("PL_random_forest")


def test_describe_merges_file_and_model_metadata(model_store: ModelStore):
    ensemble, _ = _ensemble()
    model_store.save(ensemble, "PL_random_forest")
    description = model_store.describe("PL_random_forest")
    assert description["name"] == "PL_random_forest"
    assert description["n_estimators"] == 4
    assert description["training_samples"] == 40


@pytest.mark.parametrize("name", ["", "../escape", "a/b"])
def test_invalid_names_are_rejected(model_store: ModelStore, name):
    ensemble, _ = _ensemble()
    with pytest.raises(ValueError):
        model_store.save(ensemble, name)


def test_overwrite_keeps_last_write(model_store: ModelStore):
    first, _ = _ensemble(seed=1)
    second, _ = _ensemble(seed=2)
    model_store.save(first, "m")
    model_store.save(second, "m")
    assert model_store.load("m").trees == second.trees
    assert [p.name for p in model_store.models_dir.iterdir() if p.name.endswith(".tmp")] == []


def test_concurrent_saves_of_one_name_leave_a_whole_model(model_store: ModelStore):
    candidates = [_ensemble(seed=seed)[0] for seed in range(4)]
    model_store.save(candidates[0], "m")

    with TrainingJobRunner(max_workers=4) as runner:
        saves = [
            runner.submit(model_store.save, candidates[i % 4], "m") for i in range(12)
        ]
        loads = [runner.submit(model_store.load, "m") for _ in range(12)]
        for future in saves:
            future.result(timeout=60)
        seen = [future.result(timeout=60) for future in loads]

    written = [c.trees for c in candidates]
    assert all(model.trees in written for model in seen)
    assert model_store.load("m").trees in written
    assert [m.name for m in model_store.list()] == ["m"]
    assert [p.name for p in model_store.models_dir.iterdir() if p.name.endswith(".tmp")] == []


def test_training_history_stats(tmp_path: Path):
    history = TrainingHistory(tmp_path / "history.jsonl")
    assert history.stats()["total_training_runs"] == 0

    history.append(
        {"duration_seconds": 2.0, "results": {"random_forest": {"test_accuracy": 0.5}}}
    )
    history.append(
        {
            "duration_seconds": 4.0,
            "results": {
                "random_forest": {"test_accuracy": 0.6},
                "decision_tree": {"test_accuracy": None, "best_score": 0.4},
            },
        }
    )
    with open(history.path, "a", encoding="utf-8") as fh:
        fh.write("{corrupt\n")

    stats = history.stats()
    assert stats["total_training_runs"] == 2
    assert stats["average_training_seconds"] == pytest.approx(3.0)
    assert stats["best_accuracy_by_model_type"] == {"random_forest": 0.6, "decision_tree": 0.4}
    assert stats["last_training"]["duration_seconds"] == 4.0

    lines = history.path.read_text(encoding="utf-8").splitlines()
    assert json.loads(lines[0])["duration_seconds"] == 2.0
