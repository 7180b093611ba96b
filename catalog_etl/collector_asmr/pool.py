"""Bounded worker pool for page fetch jobs."""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, List, Optional

from catalog_etl.errors import JobCancelled

LOGGER = logging.getLogger(__name__)

Job = Callable[[], None]


class WorkerPool:
    """Run submitted jobs on at most ``max_workers`` threads.

    A job signals failure by raising. The pool never retries; every failure
    is kept in :attr:`errors` and :meth:`wait` returns the first one.

    Parameters
    ----------
    max_workers : int
        Concurrency bound
    cancel_event : threading.Event, optional
        Once set, new submissions and not-yet-started jobs fail with
        :class:`JobCancelled`
    name : str
        Thread name prefix
    """

    def __init__(
        self,
        max_workers: int,
        *,
        cancel_event: Optional[threading.Event] = None,
        name: str = "worker",
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers
        self.cancel_event = cancel_event or threading.Event()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)
        self._lock = threading.Lock()
        self._futures: List[Future] = []
        self._errors: List[BaseException] = []
        self._running = 0
        self.peak_running = 0
        self.submitted = 0
        self.finished = 0

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def errors(self) -> List[BaseException]:
        with self._lock:
            return list(self._errors)

    @property
    def failed(self) -> int:
        with self._lock:
            return len(self._errors)

    @property
    def running(self) -> int:
        with self._lock:
            return self._running

    def submit(self, job: Job) -> None:
        """Schedule ``job``; it runs once a worker thread is free."""
        with self._lock:
            self.submitted += 1
            if self.cancel_event.is_set():
                self._errors.append(JobCancelled("pool cancelled before submit"))
                self.finished += 1
                return
        self._futures.append(self._executor.submit(self._run, job))

    def _run(self, job: Job) -> None:
        with self._lock:
            if self.cancel_event.is_set():
                self._errors.append(JobCancelled("pool cancelled before start"))
                self.finished += 1
                return
            self._running += 1
            self.peak_running = max(self.peak_running, self._running)
        try:
            job()
        except Exception as exc:
            with self._lock:
                self._errors.append(exc)
        finally:
            with self._lock:
                self._running -= 1
                self.finished += 1

    def wait(self) -> Optional[BaseException]:
        """Block until every submitted job is done; return the first error."""
        while True:
            pending = [future for future in self._futures if not future.done()]
            if not pending:
                break
            wait(pending)
        with self._lock:
            if self._errors:
                LOGGER.debug("%d of %d job(s) failed", len(self._errors), self.submitted)
                return self._errors[0]
        return None

    def close(self) -> None:
        self._executor.shutdown(wait=True)
