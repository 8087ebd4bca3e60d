"""Named executors: ``jobs`` runs import tasks, ``persistence`` fans out inserts."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from threading import Lock
from typing import Dict, Mapping

JOBS_POOL = "jobs"
PERSISTENCE_POOL = "persistence"


class ThreadPoolManager:
    """Create each named pool on first use and close them all together.

    A pool keeps the size it was created with; ``max_workers`` passed on later
    lookups is ignored.
    """

    def __init__(self, default_workers: int = 4, sizes: Mapping[str, int] | None = None) -> None:
        self.default_workers = default_workers
        self._sizes = dict(sizes or {})
        self._executors: Dict[str, ThreadPoolExecutor] = {}
        self._lock = Lock()
        self._closed = False

    def get(self, name: str, max_workers: int | None = None) -> ThreadPoolExecutor:
        with self._lock:
            if self._closed:
                raise RuntimeError("Thread pools have been shut down")
            executor = self._executors.get(name)
            if executor is None:
                workers = max_workers or self._sizes.get(name) or self.default_workers
                executor = ThreadPoolExecutor(
                    max_workers=workers, thread_name_prefix=f"importer-{name}"
                )
                self._executors[name] = executor
            return executor

    def shutdown(self, wait: bool = False) -> None:
        with self._lock:
            executors = list(self._executors.values())
            self._executors.clear()
            self._closed = True
        for executor in executors:
            executor.shutdown(wait=wait)


__all__ = ["JOBS_POOL", "PERSISTENCE_POOL", "ThreadPoolManager"]
