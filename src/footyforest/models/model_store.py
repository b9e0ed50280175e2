# path: src/footyforest/models/model_store.py
"""
Persistence of trained ensembles and of the training-run history.

Models are joblib artifacts named `<name>.joblib`. Writes go to a temporary
file in the same directory which is then atomically renamed into place, so
readers never see a half-written model. Writers of the same name are
serialized; the last write wins.

The training history is an append-only JSON-lines log.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import joblib
import numpy as np

from footyforest.config import FEATURE_SCHEMA_VERSION, MODEL_FILE_SUFFIX
from footyforest.errors import ModelNotFoundError, SerializationError
from footyforest.models.forest import Ensemble
from footyforest.utils.logging_utils import get_logger
from footyforest.utils.paths import (
    PathLike,
    get_model_path,
    get_models_dir,
    get_training_history_path,
)

logger = get_logger(__name__)

ARTIFACT_FORMAT_VERSION = 1


@dataclass(frozen=True)
class ModelInfo:
    name: str
    size_bytes: int
    last_modified: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "size_bytes": self.size_bytes,
            "last_modified": self.last_modified.isoformat(),
        }


def _validate_name(name: str) -> str:
    if not name or not name.strip():
        raise ValueError("Model name must not be empty")
    if any(sep in name for sep in ("/", "\\", os.sep)) or name in (".", ".."):
        raise ValueError(f"Invalid model name: {name!r}")
    return name


class ModelStore:
    """Save, load, list and delete ensembles in a directory."""

    _locks_guard = threading.Lock()
    _name_locks: Dict[str, threading.Lock] = {}

    def __init__(self, models_dir: PathLike | None = None):
        self.models_dir = get_models_dir(models_dir)

    def _path(self, name: str) -> Path:
        return get_model_path(_validate_name(name), self.models_dir)

    def _lock_for(self, path: Path) -> threading.Lock:
        key = str(path.resolve())
        with self._locks_guard:
            return self._name_locks.setdefault(key, threading.Lock())

    def exists(self, name: str) -> bool:
        return self._path(name).exists()

    def save(self, ensemble: Ensemble, name: str) -> Path:
        """Persist an ensemble under `name`, replacing any previous model."""
        path = self._path(name)
        artifact = {
            "format_version": ARTIFACT_FORMAT_VERSION,
            "feature_schema_version": ensemble.feature_schema_version,
            "name": name,
            "ensemble": ensemble,
        }
        with self._lock_for(path):
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{name}.", suffix=".tmp", dir=self.models_dir
            )
            try:
                with os.fdopen(fd, "wb") as fh:
                    joblib.dump(artifact, fh)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        logger.info("Model saved: %s", path)
        return path

    def load(self, name: str) -> Ensemble:
        """
        Load a persisted ensemble.

        Raises
        ------
        ModelNotFoundError
            If no model with this name exists.
        SerializationError
            If the artifact cannot be read or is not a FootyForest model.
        """
        path = self._path(name)
        if not path.exists():
            raise ModelNotFoundError(f"Model not found: {name}", model_name=name)

        try:
            artifact = joblib.load(path)
        except Exception as exc:
            raise SerializationError(
                f"Could not read model {name}: {exc}",
                model_name=name,
                path=str(path),
            ) from exc

        if not isinstance(artifact, dict) or not isinstance(artifact.get("ensemble"), Ensemble):
            raise SerializationError(
                f"Model file {path.name} does not contain a FootyForest ensemble",
                model_name=name,
                path=str(path),
            )
        if artifact.get("format_version") != ARTIFACT_FORMAT_VERSION:
            raise SerializationError(
                f"Unsupported model format version: {artifact.get('format_version')}",
                model_name=name,
                path=str(path),
            )
        if artifact.get("feature_schema_version") != FEATURE_SCHEMA_VERSION:
            logger.warning(
                "Model %s was trained on feature schema v%s (current: v%s)",
                name,
                artifact.get("feature_schema_version"),
                FEATURE_SCHEMA_VERSION,
            )

        logger.info("Model loaded: %s", path)
        return artifact["ensemble"]

    def list(self) -> List[ModelInfo]:
        """Persisted models, sorted by name."""
        models = []
        for path in sorted(self.models_dir.glob(f"*{MODEL_FILE_SUFFIX}")):
            if path.name.startswith("."):
                continue
            stat = path.stat()
            models.append(
                ModelInfo(
                    name=path.name[: -len(MODEL_FILE_SUFFIX)],
                    size_bytes=stat.st_size,
                    last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                )
            )
        return models

    def describe(self, name: str) -> Dict[str, Any]:
        """File metadata plus the ensemble's own summary."""
        ensemble = self.load(name)
        stat = self._path(name).stat()
        info = ModelInfo(
            name=name,
            size_bytes=stat.st_size,
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )
        return {**info.to_dict(), **ensemble.info()}

    def delete(self, name: str) -> None:
        path = self._path(name)
        with self._lock_for(path):
            if not path.exists():
                raise ModelNotFoundError(f"Model not found: {name}", model_name=name)
            path.unlink()
        logger.info("Model deleted: %s", path)

    def latest(self, names: Iterable[str]) -> Optional[ModelInfo]:
        """Most recently modified model among `names`; missing names are ignored."""
        wanted = set(names)
        matching = [m for m in self.list() if m.name in wanted]
        if not matching:
            return None
        return max(matching, key=lambda m: (m.last_modified, m.name))


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, Path):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class TrainingHistory:
    """Append-only log of training runs (one JSON document per line)."""

    def __init__(self, path: PathLike | None = None):
        self.path = Path(path) if path is not None else get_training_history_path()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def append(self, run: Dict[str, Any]) -> None:
        line = json.dumps(run, default=_json_default, sort_keys=True)
        with self._lock:
            with open(self.path, "a", encoding="utf-8") as fh:
                fh.write(line + "\n")
                fh.flush()
                os.fsync(fh.fileno())

    def runs(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        runs = []
        with self._lock:
            with open(self.path, encoding="utf-8") as fh:
                lines = fh.readlines()
        for lineno, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                runs.append(json.loads(line))
            except json.JSONDecodeError:
                logger.warning("Skipping corrupt training history line %d", lineno)
        return runs

    def stats(self) -> Dict[str, Any]:
        """Total runs, average duration, last run and best accuracy per model type."""
        runs = self.runs()
        best_accuracy: Dict[str, float] = {}
        for run in runs:
            for model_type, result in run.get("results", {}).items():
                score = result.get("test_accuracy")
                if score is None:
                    score = result.get("best_score")
                if score is None:
                    continue
                if score > best_accuracy.get(model_type, -1.0):
                    best_accuracy[model_type] = score

        durations = [run.get("duration_seconds", 0.0) for run in runs]
        return {
            "total_training_runs": len(runs),
            "average_training_seconds": float(np.mean(durations)) if durations else 0.0,
            "last_training": runs[-1] if runs else None,
            "best_accuracy_by_model_type": best_accuracy,
        }
