from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from listing_importer.config import (
    BrowserSettings,
    ImporterConfig,
    JobSettings,
    MergeSettings,
    RetrievalSettings,
)


def test_defaults_match_documented_policy() -> None:
    config = ImporterConfig()
    assert config.retrieval.max_retries == 3
    assert config.retrieval.backoff_base_seconds == 5.0
    assert config.retrieval.settle_delay_range == (2.0, 5.0)
    assert config.retrieval.page_delay_range == (2.5, 5.0)
    assert config.merge.batch_size == 10
    assert config.jobs.default_max_results == 100
    assert config.jobs.completed_ttl_seconds == 300.0
    assert config.jobs.failed_ttl_seconds == 60.0
    assert config.browser.headless is True


def test_delay_ranges_are_coerced_from_lists() -> None:
    settings = RetrievalSettings(page_delay_range=[1, 2])
    assert settings.page_delay_range == (1.0, 2.0)


@pytest.mark.parametrize("value", [[3, 1], [-1, 2], [1]])
def test_invalid_delay_ranges_are_rejected(value) -> None:
    with pytest.raises(ValidationError):
        RetrievalSettings(settle_delay_range=value)


@pytest.mark.parametrize(
    ("model", "kwargs"),
    [
        (RetrievalSettings, {"max_retries": 0}),
        (RetrievalSettings, {"max_pages": 0}),
        (RetrievalSettings, {"blocked_backoff_multiplier": 0.5}),
        (MergeSettings, {"batch_size": 0}),
        (JobSettings, {"default_max_results": 0}),
        (JobSettings, {"failed_ttl_seconds": -1}),
        (BrowserSettings, {"navigation_timeout_ms": 0}),
    ],
)
def test_bounds_are_validated(model, kwargs) -> None:
    with pytest.raises(ValidationError):
        model(**kwargs)


def test_user_agents_load_from_file(tmp_path: Path) -> None:
    ua_file = tmp_path / "agents.txt"
    ua_file.write_text("Agent/1\n\nAgent/2\n", encoding="utf-8")
    settings = BrowserSettings(user_agent_list=ua_file)
    assert settings.user_agent_list == ["Agent/1", "Agent/2"]

    with pytest.raises(ValidationError):
        BrowserSettings(user_agent_list=tmp_path / "missing.txt")


def test_store_path_resolution(tmp_path: Path) -> None:
    relative = ImporterConfig(store_path="data/custom.db")
    assert relative.resolved_store_path(tmp_path) == (tmp_path / "data" / "custom.db").resolve()

    absolute = ImporterConfig(store_path=str(tmp_path / "abs.db"))
    assert absolute.resolved_store_path(Path("/elsewhere")) == tmp_path / "abs.db"
