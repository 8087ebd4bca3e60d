"""Error taxonomy shared by the fetcher, retrieval engine, merger and orchestrator."""

from __future__ import annotations

from enum import Enum


class ImporterError(Exception):
    """Base class for importer failures."""


class JobValidationError(ImporterError, ValueError):
    """Start parameters were rejected; no job was created."""


class ListNotFound(JobValidationError):
    def __init__(self, list_id: str) -> None:
        super().__init__(f"Destination list not found: {list_id}")
        self.list_id = list_id


class JobNotFound(ImporterError, KeyError):
    def __init__(self, job_id: str) -> None:
        super().__init__(job_id)
        self.job_id = job_id

    def __str__(self) -> str:
        return f"Job not found: {self.job_id}"


class FailureKind(str, Enum):
    TRANSIENT = "transient"
    BLOCKED = "blocked"


class FetchFailure(ImporterError):
    """A single page could not be retrieved; the caller may retry."""

    kind = FailureKind.TRANSIENT

    def __init__(self, message: str, *, url: str | None = None, page_number: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.page_number = page_number


class BlockedFailure(FetchFailure):
    """The source served an automated-traffic challenge instead of results."""

    kind = FailureKind.BLOCKED


class RetrievalError(ImporterError):
    """A page exhausted its retry budget, aborting the whole retrieval."""

    def __init__(self, page_number: int, attempts: int, cause: FetchFailure) -> None:
        super().__init__(f"Page {page_number} failed after {attempts} attempts: {cause}")
        self.page_number = page_number
        self.attempts = attempts
        self.kind = cause.kind


class PersistenceFailure(ImporterError):
    """One candidate listing could not be stored."""


class JobCancelled(Exception):
    """Raised at a checkpoint once cancellation has been requested."""


__all__ = [
    "BlockedFailure",
    "FailureKind",
    "FetchFailure",
    "ImporterError",
    "JobCancelled",
    "JobNotFound",
    "JobValidationError",
    "ListNotFound",
    "PersistenceFailure",
    "RetrievalError",
]
