"""Runtime records: import jobs and the business listings they move around."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from threading import Lock
from typing import Any


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class ListingAddress:
    street: str = ""
    apt_unit: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = "USA"


@dataclass(slots=True)
class RawListing:
    """A business record as scraped, before it is shaped into a stored prospect."""

    name: str
    phone: str = ""
    address: ListingAddress = field(default_factory=ListingAddress)
    categories: str = ""
    website: str = ""
    full_address: str = ""

    @property
    def city(self) -> str:
        return self.address.city

    @property
    def state(self) -> str:
        return self.address.state


@dataclass(slots=True, frozen=True)
class ListingProjection:
    """The four fields the merger needs from listings already in a list."""

    name: str
    phone: str = ""
    city: str = ""
    state: str = ""


@dataclass(slots=True)
class StoredListing:
    id: str
    list_id: str
    listing: RawListing
    created_at: datetime


@dataclass(slots=True)
class ListingList:
    """A destination prospect list."""

    id: str
    name: str
    description: str = ""
    listing_ids: list[str] = field(default_factory=list)
    created_at: datetime | None = None
    last_modified: datetime | None = None


class JobState(str, Enum):
    STARTING = "starting"
    SCRAPING = "scraping"
    SAVING = "saving"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset({JobState.COMPLETED, JobState.CANCELLED, JobState.FAILED})

_ALLOWED_TRANSITIONS: dict[JobState, frozenset[JobState]] = {
    JobState.STARTING: frozenset({JobState.SCRAPING, JobState.CANCELLED, JobState.FAILED}),
    JobState.SCRAPING: frozenset({JobState.SAVING, JobState.CANCELLED, JobState.FAILED}),
    JobState.SAVING: frozenset({JobState.COMPLETED, JobState.CANCELLED, JobState.FAILED}),
}


@dataclass(slots=True, frozen=True)
class JobSummary:
    id: str
    state: JobState
    progress_count: int
    message: str
    search_term: str
    location: str
    started_at: datetime
    ended_at: datetime | None

    def as_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["state"] = self.state.value
        return payload


@dataclass(slots=True, frozen=True)
class JobSnapshot:
    """Read-only copy of a job handed to status readers."""

    id: str
    state: JobState
    search_term: str
    location: str
    destination_list_id: str
    max_results: int
    progress_count: int
    saved_count: int
    total_to_save: int
    imported_count: int
    message: str
    error: str | None
    started_at: datetime
    ended_at: datetime | None
    results: tuple[RawListing, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["state"] = self.state.value
        payload["results"] = list(payload["results"])
        return payload


@dataclass
class Job:
    """One retrieve-then-merge run.

    Only the background task that owns the job mutates it, with the single
    exception of :meth:`cancel`. Every mutation goes through the job lock and
    states only ever move forward, so a cancelled or terminal job is never
    reverted by a late write from its task.
    """

    id: str
    search_term: str
    location: str
    destination_list_id: str
    max_results: int
    state: JobState = JobState.STARTING
    progress_count: int = 0
    saved_count: int = 0
    total_to_save: int = 0
    imported_count: int = 0
    message: str = "Initializing scraper..."
    error: str | None = None
    started_at: datetime = field(default_factory=_utcnow)
    ended_at: datetime | None = None
    results: list[RawListing] = field(default_factory=list)
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    # ------------------------------------------------------------------
    def transition(self, target: JobState, message: str) -> bool:
        """Move to ``target`` if the state machine allows it."""

        with self._lock:
            return self._transition_locked(target, message)

    def _transition_locked(self, target: JobState, message: str) -> bool:
        if target not in _ALLOWED_TRANSITIONS.get(self.state, frozenset()):
            return False
        self.state = target
        self.message = message
        if target.terminal:
            self.ended_at = _utcnow()
        return True

    def record_progress(self, message: str, count: int) -> None:
        with self._lock:
            if self.state is not JobState.SCRAPING:
                return
            self.message = message
            self.progress_count = max(self.progress_count, count)

    def begin_saving(self, results: list[RawListing]) -> bool:
        with self._lock:
            if not self._transition_locked(JobState.SAVING, "Saving businesses to database..."):
                return False
            self.results = list(results)
            self.total_to_save = len(results)
            self.saved_count = 0
            return True

    def record_saved(self, saved: int, total: int) -> None:
        with self._lock:
            self.saved_count = saved
            self.total_to_save = total
            if self.state is JobState.SAVING:
                self.message = f"Saving businesses to database... ({saved}/{total})"

    def complete(self, imported: int) -> bool:
        with self._lock:
            self.imported_count = imported
            return self._transition_locked(
                JobState.COMPLETED, f"Successfully imported {imported} businesses"
            )

    def fail(self, error: str) -> bool:
        with self._lock:
            if not self._transition_locked(JobState.FAILED, f"Scraping failed: {error}"):
                return False
            self.error = error
            return True

    def cancel(self) -> bool:
        with self._lock:
            return self._transition_locked(JobState.CANCELLED, "Job cancelled by user")

    # ------------------------------------------------------------------
    def snapshot(self, include_results: bool = True) -> JobSnapshot:
        with self._lock:
            return JobSnapshot(
                id=self.id,
                state=self.state,
                search_term=self.search_term,
                location=self.location,
                destination_list_id=self.destination_list_id,
                max_results=self.max_results,
                progress_count=self.progress_count,
                saved_count=self.saved_count,
                total_to_save=self.total_to_save,
                imported_count=self.imported_count,
                message=self.message,
                error=self.error,
                started_at=self.started_at,
                ended_at=self.ended_at,
                results=tuple(self.results) if include_results else (),
            )

    def summary(self) -> JobSummary:
        with self._lock:
            return JobSummary(
                id=self.id,
                state=self.state,
                progress_count=self.progress_count,
                message=self.message,
                search_term=self.search_term,
                location=self.location,
                started_at=self.started_at,
                ended_at=self.ended_at,
            )


__all__ = [
    "Job",
    "JobSnapshot",
    "JobState",
    "JobSummary",
    "ListingAddress",
    "ListingList",
    "ListingProjection",
    "RawListing",
    "StoredListing",
]
