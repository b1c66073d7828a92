"""
Bounded worker pool for concurrent GCP API calls.

Tasks run on a ThreadPoolExecutor sized to the configured request
concurrency. With stop_on_error, the first failure stops new tasks from being
admitted; tasks already running finish, but done() surfaces only that first
failure.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Callable, Generic, List, Optional, TypeVar

from ..utils import setup_logging
from .errors import WorkerPoolError, WorkerPoolStoppedError

logger = setup_logging()

T = TypeVar("T")

DEFAULT_CONCURRENCY = 10


@dataclass
class Result(Generic[T]):
    """The outcome of one task: its value, or the error it raised."""

    value: Optional[T] = None
    error: Optional[BaseException] = None


class WorkerPool(Generic[T]):
    """
    A fixed-size pool of worker threads.

    Example:
        pool = WorkerPool(concurrency=5)
        for bucket in buckets:
            pool.do(list_state_files, bucket)
        results = pool.done()
    """

    def __init__(self, concurrency: int = DEFAULT_CONCURRENCY, stop_on_error: bool = True) -> None:
        if concurrency <= 0:
            raise ValueError("concurrency must be greater than zero")
        self._executor = ThreadPoolExecutor(max_workers=concurrency)
        self._stop_on_error = stop_on_error
        self._lock = threading.Lock()
        self._futures: List[Future] = []
        self._first_error: Optional[BaseException] = None
        self._stopped = False
        self._done = False

    def do(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> None:
        """
        Submits a task to the pool.

        Raises:
            WorkerPoolStoppedError: If a previous task failed under stop_on_error,
                or done() has already been called
        """
        with self._lock:
            if self._done:
                raise WorkerPoolStoppedError("worker pool is already done")
            if self._stopped:
                raise WorkerPoolStoppedError(
                    f"worker pool stopped after a task failed: {self._first_error}"
                )
            self._futures.append(self._executor.submit(self._run, fn, *args, **kwargs))

    def _run(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> Result[T]:
        with self._lock:
            if self._stopped:
                return Result(error=WorkerPoolStoppedError("worker pool stopped before task started"))
        try:
            return Result(value=fn(*args, **kwargs))
        except Exception as e:
            with self._lock:
                if self._first_error is None:
                    self._first_error = e
                if self._stop_on_error:
                    self._stopped = True
            return Result(error=e)

    def done(self) -> List[Result[T]]:
        """
        Waits for every submitted task and returns their results in submission order.

        Raises:
            WorkerPoolError: With stop_on_error, chained to the first task failure
        """
        with self._lock:
            self._done = True
            futures = list(self._futures)
        wait(futures)
        self._executor.shutdown(wait=True)

        results = [f.result() for f in futures]
        if self._stop_on_error and self._first_error is not None:
            logger.debug(f"Worker pool stopped on error: {self._first_error}")
            raise WorkerPoolError(f"task failed: {self._first_error}") from self._first_error
        return results
