"""Reconcile freshly retrieved listings with a destination list and persist the new ones."""

from __future__ import annotations

from concurrent.futures import Executor, Future
from typing import Callable, Sequence

import structlog

from ..infra import ListingStore
from ..models import RawListing, StoredListing
from .dedup import DuplicateIndex

SaveProgressCallback = Callable[[int, int], None]


class ListingMerger:
    """Deduplicate candidates against a list snapshot, then store them batch by batch.

    The existing listings are read once, up front. Keys of every accepted
    candidate are added to the in-memory index as soon as it is selected, so
    repeats later in the same run are skipped even when the first copy then
    fails to persist. Concurrent jobs writing to the same list are not seen.
    """

    def __init__(
        self,
        store: ListingStore,
        executor: Executor,
        batch_size: int = 10,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.store = store
        self.executor = executor
        self.batch_size = batch_size
        self.logger = logger or structlog.get_logger("listing_importer.merger")

    def merge(
        self,
        listings: Sequence[RawListing],
        list_id: str,
        on_progress: SaveProgressCallback | None = None,
    ) -> list[StoredListing]:
        index = DuplicateIndex.from_records(self.store.find_existing_projection(list_id))
        self.logger.info("merge_started", candidates=len(listings), existing_keys=len(index))

        total = len(listings)
        processed = 0
        duplicates = 0
        persisted: list[StoredListing] = []
        for start in range(0, total, self.batch_size):
            batch = listings[start : start + self.batch_size]
            pending: list[tuple[RawListing, Future[StoredListing]]] = []
            for listing in batch:
                if index.check(listing).is_duplicate:
                    self.logger.debug("duplicate_skipped", name=listing.name, phone=listing.phone)
                    duplicates += 1
                    processed += 1
                    continue
                index.add(listing)
                pending.append((listing, self.executor.submit(self.store.insert, list_id, listing)))

            for listing, future in pending:
                try:
                    persisted.append(future.result())
                except Exception as exc:  # noqa: BLE001
                    self.logger.warning(
                        "listing_persist_failed", name=listing.name, error=str(exc)
                    )
                processed += 1
            if on_progress is not None:
                on_progress(processed, total)

        self.logger.info(
            "merge_finished",
            persisted=len(persisted),
            duplicates=duplicates,
            failed=total - duplicates - len(persisted),
        )
        return persisted


__all__ = ["ListingMerger", "SaveProgressCallback"]
