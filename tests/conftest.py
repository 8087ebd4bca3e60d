"""Shared fixtures: fast configs, a temporary list store and scripted collaborators."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable, Iterable, Sequence

import pytest

from listing_importer.config import (
    ConfigLocator,
    ConfigRepository,
    ImporterConfig,
    JobSettings,
    RetrievalSettings,
)
from listing_importer.infra import SQLiteListingStore, SQLiteManager
from listing_importer.models import ListingAddress, RawListing


@pytest.fixture(scope="session", autouse=True)
def _isolated_home(tmp_path_factory: pytest.TempPathFactory) -> Iterable[Path]:
    # 日志只初始化一次，整个会话共用同一个临时目录
    home = tmp_path_factory.mktemp("importer-home")
    previous = os.environ.get("LISTING_IMPORTER_HOME")
    os.environ["LISTING_IMPORTER_HOME"] = str(home)
    yield home
    if previous is None:
        os.environ.pop("LISTING_IMPORTER_HOME", None)
    else:
        os.environ["LISTING_IMPORTER_HOME"] = previous


@pytest.fixture
def fast_config() -> ImporterConfig:
    return ImporterConfig(
        retrieval=RetrievalSettings(
            settle_delay_range=(0.0, 0.0),
            page_delay_range=(0.0, 0.0),
            backoff_base_seconds=0.0,
        ),
        jobs=JobSettings(max_concurrent_jobs=2),
    )


@pytest.fixture
def listing_store(tmp_path: Path) -> Iterable[SQLiteListingStore]:
    manager = SQLiteManager()
    store = SQLiteListingStore(manager, tmp_path / "listings.db")
    yield store
    manager.close_all()


@pytest.fixture
def make_listing() -> Callable[..., RawListing]:
    def _builder(
        name: str = "Acme Plumbing",
        phone: str = "(217) 555-0100",
        city: str = "Springfield",
        state: str = "IL",
        **overrides: Any,
    ) -> RawListing:
        address = ListingAddress(street="123 Main St", city=city, state=state, zip_code="62704")
        return RawListing(name=name, phone=phone, address=address, **overrides)

    return _builder


@pytest.fixture
def temp_config_repository(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> ConfigRepository:
    monkeypatch.setenv("LISTING_IMPORTER_HOME", str(tmp_path))
    return ConfigRepository(ConfigLocator(project_root=tmp_path))


class ScriptedFetcher:
    """Page fetcher replaying canned outcomes.

    ``pages`` maps a page number to a sequence of outcomes consumed one per
    attempt; the last outcome repeats. An outcome is either a list of
    listings or an exception instance to raise. Unknown pages are empty.
    """

    def __init__(self, pages: dict[int, Sequence[Any]] | None = None) -> None:
        self.pages = {number: list(outcomes) for number, outcomes in (pages or {}).items()}
        self.calls: list[int] = []
        self.closed = False

    def fetch_page(self, search_term: str, location: str, page_number: int) -> list[RawListing]:
        self.calls.append(page_number)
        outcomes = self.pages.get(page_number)
        if not outcomes:
            return []
        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return list(outcome)

    def close(self) -> None:
        self.closed = True


class StubScheduler:
    """Record eviction requests and fire them on demand."""

    def __init__(self) -> None:
        self.scheduled: list[tuple[str, float]] = []
        self._callbacks: dict[str, Callable[[str], None]] = {}
        self.stopped = False

    def schedule_eviction(
        self, job_id: str, delay_seconds: float, callback: Callable[[str], None]
    ) -> None:
        self.scheduled.append((job_id, delay_seconds))
        self._callbacks[job_id] = callback

    def fire(self, job_id: str) -> None:
        self._callbacks.pop(job_id)(job_id)

    def shutdown(self) -> None:
        self.stopped = True


@pytest.fixture
def scripted_fetcher() -> type[ScriptedFetcher]:
    return ScriptedFetcher


@pytest.fixture
def stub_scheduler() -> StubScheduler:
    return StubScheduler()
