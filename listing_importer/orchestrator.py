"""Job orchestrator: start, track, cancel and expire background import jobs."""

from __future__ import annotations

import random
import secrets
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable, Protocol

import structlog

from .config import ImporterConfig
from .engine import (
    BrowserSession,
    CancellationToken,
    ListingFetcher,
    ListingMerger,
    RetrievalEngine,
    ThreadPoolManager,
)
from .engine.thread_pool import JOBS_POOL, PERSISTENCE_POOL
from .errors import JobCancelled, JobNotFound, JobValidationError, ListNotFound
from .infra import ListingStore, UserAgentPool
from .logging_conf import configure_logging, job_logger
from .models import Job, JobSnapshot, JobState, JobSummary, RawListing
from .scheduler import APSchedulerAdapter


class JobFetcher(Protocol):
    def fetch_page(self, search_term: str, location: str, page_number: int) -> list[RawListing]:
        """Return one page of listings."""

    def close(self) -> None:
        """Release the browser session."""


FetcherFactory = Callable[[structlog.BoundLogger], JobFetcher]


def new_job_id() -> str:
    return f"job_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


@dataclass
class _JobEntry:
    job: Job
    token: CancellationToken = field(default_factory=CancellationToken)
    future: Future | None = None


class JobRegistry:
    """In-memory mapping of job id to job, owned by one orchestrator."""

    def __init__(self) -> None:
        self._entries: dict[str, _JobEntry] = {}
        self._lock = Lock()

    def add(self, entry: _JobEntry) -> None:
        with self._lock:
            self._entries[entry.job.id] = entry

    def get(self, job_id: str) -> _JobEntry:
        with self._lock:
            entry = self._entries.get(job_id)
        if entry is None:
            raise JobNotFound(job_id)
        return entry

    def remove(self, job_id: str) -> bool:
        with self._lock:
            return self._entries.pop(job_id, None) is not None

    def entries(self) -> list[_JobEntry]:
        with self._lock:
            return list(self._entries.values())

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._entries


class JobOrchestrator:
    """Central coordinator owning the job registry and the background runner.

    ``start`` only validates and enqueues; retrieval and merging happen on the
    ``jobs`` pool of the :class:`ThreadPoolManager`. Each job owns a
    cancellation token that its task polls at checkpoints, and every finished
    job gets exactly one eviction callback on the scheduler.
    """

    def __init__(
        self,
        config: ImporterConfig,
        store: ListingStore,
        *,
        thread_pool: ThreadPoolManager | None = None,
        scheduler: APSchedulerAdapter | None = None,
        fetcher_factory: FetcherFactory | None = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.thread_pool = thread_pool or ThreadPoolManager(
            config.jobs.max_concurrent_jobs,
            sizes={
                JOBS_POOL: config.jobs.max_concurrent_jobs,
                PERSISTENCE_POOL: config.merge.batch_size,
            },
        )
        self.scheduler = scheduler or APSchedulerAdapter()
        self.registry = JobRegistry()
        self.ua_pool = UserAgentPool(config.browser.user_agent_list)
        self.logger = configure_logging().bind(component="orchestrator")
        self._fetcher_factory = fetcher_factory or self._build_fetcher
        self._sleep = sleep
        self._rng = rng or random.Random()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------
    def start(
        self,
        search_term: str,
        location: str,
        destination_list_id: str,
        max_results: int | None = None,
    ) -> str:
        search_term = (search_term or "").strip()
        location = (location or "").strip()
        destination_list_id = (destination_list_id or "").strip()
        if not (search_term and location and destination_list_id):
            raise JobValidationError(
                "Search term, location, and destination list id are required"
            )
        if max_results is None:
            max_results = self.config.jobs.default_max_results
        if max_results < 1:
            raise JobValidationError("max_results must be a positive integer")
        if not self.store.list_exists(destination_list_id):
            raise ListNotFound(destination_list_id)

        job = Job(
            id=new_job_id(),
            search_term=search_term,
            location=location,
            destination_list_id=destination_list_id,
            max_results=max_results,
        )
        entry = _JobEntry(job=job)
        self.registry.add(entry)
        executor = self.thread_pool.get(JOBS_POOL, max_workers=self.config.jobs.max_concurrent_jobs)
        entry.future = executor.submit(self._run, entry)
        self.logger.info(
            "job_started",
            job_id=job.id,
            search_term=search_term,
            location=location,
            list_id=destination_list_id,
            max_results=max_results,
        )
        return job.id

    def get_status(self, job_id: str) -> JobSnapshot:
        return self.registry.get(job_id).job.snapshot()

    def cancel(self, job_id: str) -> JobSnapshot:
        """Request cancellation; the task stops at its next checkpoint."""

        entry = self.registry.get(job_id)
        if entry.job.cancel():
            self.logger.info("job_cancel_requested", job_id=job_id)
        entry.token.cancel()
        return entry.job.snapshot(include_results=False)

    def list_all(self) -> list[JobSummary]:
        return [entry.job.summary() for entry in self.registry.entries()]

    def wait(self, job_id: str, timeout: float | None = None) -> JobSnapshot:
        """Block until the job's background task has finished."""

        entry = self.registry.get(job_id)
        if entry.future is not None:
            entry.future.result(timeout=timeout)
        return entry.job.snapshot()

    def shutdown(self, cancel_running: bool = True) -> None:
        if cancel_running:
            for entry in self.registry.entries():
                if not entry.job.state.terminal:
                    entry.job.cancel()
                    entry.token.cancel()
        self.thread_pool.shutdown(wait=False)
        self.scheduler.shutdown()

    # ------------------------------------------------------------------
    # Background task
    # ------------------------------------------------------------------
    def _run(self, entry: _JobEntry) -> None:
        job, token = entry.job, entry.token
        log = job_logger(
            job.id,
            search_term=job.search_term,
            location=job.location,
            list_id=job.destination_list_id,
        )
        fetcher: JobFetcher | None = None
        try:
            token.raise_if_cancelled()
            job.transition(JobState.SCRAPING, "Starting to scrape businesses...")
            fetcher = self._fetcher_factory(log)
            engine = RetrievalEngine(
                fetcher,
                self.config.retrieval,
                token,
                logger=log,
                sleep=self._sleep,
                rng=self._rng,
            )
            listings = engine.retrieve(
                job.search_term, job.location, job.max_results, on_progress=job.record_progress
            )
            token.raise_if_cancelled()
            if not job.begin_saving(listings):
                raise JobCancelled()

            merger = ListingMerger(
                self.store,
                self.thread_pool.get(PERSISTENCE_POOL, max_workers=self.config.merge.batch_size),
                batch_size=self.config.merge.batch_size,
                logger=log,
            )
            persisted = merger.merge(listings, job.destination_list_id, on_progress=job.record_saved)
            self.store.append_ids_and_touch(
                job.destination_list_id, [stored.id for stored in persisted]
            )
            if job.complete(len(persisted)):
                log.info("job_completed", imported=len(persisted), retrieved=len(listings))
            else:
                log.info("job_saved_after_cancel", imported=len(persisted))
        except JobCancelled:
            job.cancel()
            log.info("job_cancelled", progress=job.progress_count)
        except Exception as exc:  # noqa: BLE001
            job.fail(str(exc))
            log.error("job_failed", error=str(exc), exc_info=True)
        finally:
            if fetcher is not None:
                try:
                    fetcher.close()
                except Exception as exc:  # noqa: BLE001
                    log.warning("fetcher_close_failed", error=str(exc))
            self._schedule_eviction(job, log)

    def _schedule_eviction(self, job: Job, log: structlog.BoundLogger) -> None:
        if job.state is JobState.FAILED:
            delay = self.config.jobs.failed_ttl_seconds
        else:
            delay = self.config.jobs.completed_ttl_seconds
        try:
            self.scheduler.schedule_eviction(job.id, delay, self._evict)
        except Exception as exc:  # noqa: BLE001
            # 调度器不可用时立即移除，避免注册表无限增长
            log.warning("eviction_schedule_failed", error=str(exc))
            self._evict(job.id)

    def _evict(self, job_id: str) -> None:
        if self.registry.remove(job_id):
            self.logger.info("job_evicted", job_id=job_id)

    def _build_fetcher(self, log: structlog.BoundLogger) -> ListingFetcher:
        session = BrowserSession(self.config.browser, self.ua_pool, logger=log)
        return ListingFetcher(self.config, session, logger=log, sleep=self._sleep, rng=self._rng)


__all__ = ["FetcherFactory", "JobOrchestrator", "JobRegistry", "new_job_id"]
