"""Order-stable worker pool with cooperative cancellation."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from typing import TypeVar

from joblib import Parallel, delayed

from regact.errors import ConfigurationError

T = TypeVar("T")
R = TypeVar("R")

logger = logging.getLogger(__name__)


class CancellationToken:
    """Thread-safe flag checked before each task starts.

    Tasks already running finish normally; tasks not yet started are skipped
    and reported as ``None`` by `parallel_map`.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def _run_task(
    func: Callable[[T], R], item: T, cancel: CancellationToken | None
) -> R | None:
    if cancel is not None and cancel.cancelled:
        return None
    return func(item)


def parallel_map(
    func: Callable[[T], R],
    items: Iterable[T],
    *,
    n_jobs: int = 1,
    backend: str = "threading",
    cancel: CancellationToken | None = None,
    chunk_size: int = 64,
) -> list[R | None]:
    """Apply `func` to independent items; output order matches input order.

    Notes:
    - Skipped (cancelled) items yield ``None``.
    - With ``backend="loky"`` the token cannot be shared with worker
      processes, so it is checked between chunks of `chunk_size` items.
    """
    seq = list(items)
    if not seq:
        return []
    jobs = int(n_jobs)
    if jobs == 0 or jobs < -1:
        raise ConfigurationError("n_jobs must be a positive integer or -1.")
    chunks = max(1, int(chunk_size))

    if jobs == 1 or len(seq) == 1 or backend == "sequential":
        logger.debug("parallel_map serial execution: n_items=%d", len(seq))
        return [_run_task(func, item, cancel) for item in seq]

    logger.debug(
        "parallel_map n_items=%d n_jobs=%d backend=%s", len(seq), jobs, backend
    )
    if backend == "threading":
        rows = Parallel(n_jobs=jobs, backend="threading")(
            delayed(_run_task)(func, item, cancel) for item in seq
        )
        return list(rows)

    if backend != "loky":
        raise ConfigurationError(f"Unknown backend '{backend}'.")

    out: list[R | None] = []
    with Parallel(n_jobs=jobs, backend="loky") as pool:
        for start in range(0, len(seq), chunks):
            part = seq[start : start + chunks]
            if cancel is not None and cancel.cancelled:
                out.extend([None] * len(part))
                continue
            out.extend(pool(delayed(func)(item) for item in part))
    return out
