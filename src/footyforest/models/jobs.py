"""
Cancellation tokens and a small worker pool for long-running training jobs.

Training checks its token between trees, folds and candidates
(cooperative cancellation); a fired token raises `TrainingTimeoutError`
at the next check and the in-progress work is abandoned.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from footyforest.errors import TrainingTimeoutError
from footyforest.utils.logging_utils import get_logger

logger = get_logger(__name__)


class CancellationToken:
    """
    Deadline plus an explicit cancel flag.

    Parameters
    ----------
    budget_seconds : float | None
        Wall-clock budget measured from construction; None means no deadline.
    clock : Callable[[], float]
        Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        budget_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.budget_seconds = budget_seconds
        self._clock = clock
        self._started = clock()
        self._cancelled = threading.Event()

    @property
    def elapsed_seconds(self) -> float:
        return self._clock() - self._started

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        if self._cancelled.is_set():
            return True
        return self.budget_seconds is not None and self.elapsed_seconds >= self.budget_seconds

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            elapsed = self.elapsed_seconds
            raise TrainingTimeoutError(
                f"Training abandoned after {elapsed:.1f}s "
                f"(budget: {self.budget_seconds}s)",
                elapsed_seconds=elapsed,
                budget_seconds=self.budget_seconds,
            )


class TrainingJobRunner:
    """Submit training callables to a thread pool and get futures back."""

    def __init__(self, max_workers: int = 2):
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="footyforest-train"
        )

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        logger.info("Submitting training job %s", getattr(fn, "__name__", fn))
        return self._executor.submit(fn, *args, **kwargs)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "TrainingJobRunner":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown(wait=True)
