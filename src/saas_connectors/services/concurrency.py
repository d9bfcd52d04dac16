"""Bounded join barrier for parallel fan-out with cancel support."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, Generic, Mapping, Optional, TypeVar

from ..core.context import CallContext
from ..core.logging import get_logger

T = TypeVar("T")

DEFAULT_MAX_CONCURRENCY = 2

LOGGER = get_logger(__name__)


@dataclass(slots=True)
class BarrierResult(Generic[T]):
    """Values of completed jobs and errors of failed or skipped ones, keyed like the input."""

    values: Dict[str, T] = field(default_factory=dict)
    errors: Dict[str, Exception] = field(default_factory=dict)


def run_simultaneously(
    jobs: Mapping[str, Callable[[], T]],
    *,
    max_concurrent: int = DEFAULT_MAX_CONCURRENCY,
    context: Optional[CallContext] = None,
) -> BarrierResult[T]:
    """
    Run ``jobs`` with at most ``max_concurrent`` in flight and wait for all of them.

    A failing job never aborts the batch; its exception is recorded under its
    key. Once ``context`` is cancelled or past its deadline no further job is
    started (each is recorded with a ``cancelled`` error) while jobs already
    running are waited for.
    """

    result: BarrierResult[T] = BarrierResult()
    if not jobs:
        return result

    def _guarded(job: Callable[[], T]) -> T:
        if context is not None:
            context.check()
        return job()

    workers = max(1, min(max_concurrent, len(jobs)))
    futures: Dict[str, Future] = {}
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="saas-connectors") as executor:
        for key, job in jobs.items():
            futures[key] = executor.submit(_guarded, job)

    for key, future in futures.items():
        error = future.exception()
        if error is None:
            result.values[key] = future.result()
        elif isinstance(error, Exception):
            result.errors[key] = error
        else:
            raise error

    if result.errors:
        LOGGER.debug(
            "Parallel batch finished with failures",
            extra={"status": "partial", "failed": sorted(result.errors), "succeeded": len(result.values)},
        )
    return result
