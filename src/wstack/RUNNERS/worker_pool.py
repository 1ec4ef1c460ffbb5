"""
Fan-out/fan-in of per-image and per-container workers.
"""
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from ..errors import AggregatedError, WStackError
from ..logger import logger


@dataclass
class WorkerResult:
    """
    The single message a worker emits when it finishes.
    """
    name: str
    error: Optional[WStackError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _run_one(name: str, fn: Callable[[], None]) -> WorkerResult:
    try:
        fn()
    except WStackError as e:
        return WorkerResult(name=name, error=e)
    return WorkerResult(name=name)


def run_workers(operation: str, tasks: Sequence[Tuple[str, Callable[[], None]]]) -> List[WorkerResult]:
    """
    Runs one worker per task concurrently and joins all of them.

    A failing worker never stops its siblings. Once every worker has
    finished, the failures are raised together.

    :param operation: Name of the operation, used in the aggregated error.
    :param tasks: ``(name, callable)`` pairs, one per image or container.
    :return: One result per task, in task order.
    :raises AggregatedError: If at least one worker failed.
    """
    if not tasks:
        return []

    log = logger.bind(operation=operation)
    log.debug("Starting workers", count=len(tasks))

    with ThreadPoolExecutor(max_workers=len(tasks), thread_name_prefix=f"wstack-{operation}") as pool:
        futures = [pool.submit(_run_one, name, fn) for name, fn in tasks]
        wait(futures)

    # Anything other than a WStackError is a bug and propagates here.
    results = [f.result() for f in futures]
    errors = [r.error for r in results if r.error is not None]
    if errors:
        for error in errors:
            log.debug("Worker failed", err=str(error))
        raise AggregatedError(operation, errors)

    log.debug("All workers finished")
    return results
