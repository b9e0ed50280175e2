"""
Typed errors raised by the FootyForest core.

Every error carries a machine-readable ``kind``, a human-readable message and
a ``details`` dict (counts, names, paths) so callers can log it and decide
between retrying and aborting.
"""

from __future__ import annotations

from typing import Any, Dict


class FootyForestError(Exception):
    """Base class for all FootyForest errors."""

    kind: str = "footyforest_error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message, **self.details}


class InsufficientDataError(FootyForestError):
    """Training or evaluation set is below the minimum sample threshold."""

    kind = "insufficient_data"

    def __init__(self, message: str, available: int, required: int, **details: Any):
        super().__init__(message, available=available, required=required, **details)
        self.available = available
        self.required = required


class FeatureGenerationError(FootyForestError):
    """Features could not be generated for a single match."""

    kind = "feature_generation"

    def __init__(self, message: str, match_id: Any = None, **details: Any):
        super().__init__(message, match_id=match_id, **details)
        self.match_id = match_id


class MatchNotFoundError(FeatureGenerationError):
    """The requested match does not exist in the data source."""

    kind = "match_not_found"


class ModelNotFoundError(FootyForestError):
    """No persisted model matches the requested name or competition."""

    kind = "model_not_found"

    def __init__(self, message: str, model_name: str | None = None, **details: Any):
        super().__init__(message, model_name=model_name, **details)
        self.model_name = model_name


class TrainingTimeoutError(FootyForestError):
    """The training budget was exceeded; no model was persisted."""

    kind = "training_timeout"

    def __init__(
        self,
        message: str,
        elapsed_seconds: float,
        budget_seconds: float | None,
        **details: Any,
    ):
        super().__init__(
            message,
            elapsed_seconds=elapsed_seconds,
            budget_seconds=budget_seconds,
            **details,
        )
        self.elapsed_seconds = elapsed_seconds
        self.budget_seconds = budget_seconds


class SerializationError(FootyForestError):
    """A persisted model is corrupt, unreadable or of an unexpected format."""

    kind = "serialization"

    def __init__(
        self,
        message: str,
        model_name: str | None = None,
        path: str | None = None,
        **details: Any,
    ):
        super().__init__(message, model_name=model_name, path=path, **details)
        self.model_name = model_name
        self.path = path
