"""Paginated retrieval with pacing, retry/backoff and cooperative cancellation."""

from __future__ import annotations

import random
import time
from threading import Event
from typing import Callable, Protocol

import structlog

from ..config import RetrievalSettings
from ..errors import FailureKind, FetchFailure, JobCancelled, RetrievalError
from ..models import RawListing
from .dedup import unique_by_phone_key

ProgressCallback = Callable[[str, int], None]


class PageFetcher(Protocol):
    def fetch_page(self, search_term: str, location: str, page_number: int) -> list[RawListing]:
        """Return the listings on one page or raise :class:`FetchFailure`."""


class CancellationToken:
    """Advisory cancellation flag polled at checkpoints."""

    def __init__(self) -> None:
        self._event = Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise JobCancelled()


class RetrievalEngine:
    """Drive a :class:`PageFetcher` page by page until the results run out."""

    def __init__(
        self,
        fetcher: PageFetcher,
        settings: RetrievalSettings,
        token: CancellationToken | None = None,
        *,
        logger: structlog.BoundLogger | None = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.settings = settings
        self.token = token or CancellationToken()
        self.logger = logger or structlog.get_logger("listing_importer.retrieval")
        self._sleep = sleep
        self._rng = rng or random.Random()

    def retrieve(
        self,
        search_term: str,
        location: str,
        max_results: int,
        on_progress: ProgressCallback | None = None,
    ) -> list[RawListing]:
        results: list[RawListing] = []
        page_number = 1
        while len(results) < max_results and page_number <= self.settings.max_pages:
            self.token.raise_if_cancelled()
            self._report(on_progress, f"Scraping page {page_number}...", len(results))

            page_results = self._fetch_with_retries(search_term, location, page_number)
            if not page_results:
                self.logger.info("pagination_exhausted", page=page_number, total=len(results))
                break
            results.extend(page_results)
            self.logger.info(
                "page_fetched", page=page_number, listings=len(page_results), total=len(results)
            )
            self._report(
                on_progress,
                f"Retrieved {len(page_results)} businesses from page {page_number}",
                len(results),
            )
            page_number += 1

            if len(results) < max_results and page_number <= self.settings.max_pages:
                self._sleep(self._rng.uniform(*self.settings.page_delay_range))

        self._report(on_progress, "Scraping complete", len(results))
        unique = unique_by_phone_key(results)
        if len(unique) != len(results):
            self.logger.info("intra_run_duplicates_removed", removed=len(results) - len(unique))
        return unique

    def backoff_delay(self, attempt: int, kind: FailureKind = FailureKind.TRANSIENT) -> float:
        """``base * attempt`` plus up to the same amount of random jitter."""

        base = self.settings.backoff_base_seconds * attempt
        if kind is FailureKind.BLOCKED:
            base *= self.settings.blocked_backoff_multiplier
        return base + self._rng.uniform(0, base)

    # ------------------------------------------------------------------
    def _fetch_with_retries(
        self, search_term: str, location: str, page_number: int
    ) -> list[RawListing]:
        max_attempts = self.settings.max_retries
        for attempt in range(1, max_attempts + 1):
            self.token.raise_if_cancelled()
            try:
                return self.fetcher.fetch_page(search_term, location, page_number)
            except FetchFailure as exc:
                self.logger.warning(
                    "page_attempt_failed",
                    page=page_number,
                    attempt=attempt,
                    kind=exc.kind.value,
                    error=str(exc),
                )
                if attempt == max_attempts:
                    raise RetrievalError(page_number, attempt, exc) from exc
                self._sleep(self.backoff_delay(attempt, exc.kind))
        return []

    def _report(self, on_progress: ProgressCallback | None, message: str, count: int) -> None:
        if on_progress is not None:
            on_progress(message, count)
        self.token.raise_if_cancelled()


__all__ = ["CancellationToken", "PageFetcher", "ProgressCallback", "RetrievalEngine"]
