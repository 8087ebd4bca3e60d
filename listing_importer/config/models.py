"""Pydantic models describing importer configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def _coerce_range(value: Any, field_name: str) -> tuple[float, float]:
    if isinstance(value, (list, tuple)) and len(value) == 2:
        low, high = float(value[0]), float(value[1])
        if low < 0 or high < 0:
            raise ValueError(f"{field_name} values must be non-negative")
        if high < low:
            raise ValueError(f"{field_name} upper bound must be >= lower bound")
        return (low, high)
    raise ValueError(f"{field_name} expects a two-item list or tuple")


class BrowserSettings(BaseModel):
    """Options forwarded to the Playwright browser and its page contexts."""

    headless: bool = True
    navigation_timeout_ms: int = 30000
    selector_timeout_ms: int = 5000
    viewport_size: tuple[int, int] = (1920, 1080)
    locale: str = "en-US"
    user_agent_list: list[str] | Path = Field(default_factory=lambda: [DEFAULT_USER_AGENT])
    extra_headers: dict[str, str] = Field(
        default_factory=lambda: {
            "Accept-Language": "en-US,en;q=0.9",
            "Accept": (
                "text/html,application/xhtml+xml,application/xml;q=0.9,"
                "image/avif,image/webp,image/apng,*/*;q=0.8"
            ),
            "Upgrade-Insecure-Requests": "1",
            "DNT": "1",
        }
    )
    launch_args: list[str] = Field(
        default_factory=lambda: [
            "--no-sandbox",
            "--disable-setuid-sandbox",
            "--disable-dev-shm-usage",
            "--disable-gpu",
            "--window-size=1920,1080",
            "--disable-extensions",
            "--no-first-run",
            "--no-default-browser-check",
        ]
    )

    @model_validator(mode="after")
    def _validate_timeouts(self) -> "BrowserSettings":
        if self.navigation_timeout_ms <= 0 or self.selector_timeout_ms <= 0:
            raise ValueError("browser timeouts must be positive")
        return self

    @model_validator(mode="after")
    def _apply_user_agents(self) -> "BrowserSettings":
        if isinstance(self.user_agent_list, Path):
            if not self.user_agent_list.exists():
                raise ValueError(f"UA file not found: {self.user_agent_list}")
            content = self.user_agent_list.read_text(encoding="utf-8").splitlines()
            self.user_agent_list = [line.strip() for line in content if line.strip()]
        return self


class RetrievalSettings(BaseModel):
    """Pagination, pacing and retry policy for one retrieval run."""

    base_url: str = "https://www.yellowpages.com/search"
    max_retries: int = 3
    backoff_base_seconds: float = 5.0
    blocked_backoff_multiplier: float = 2.0
    settle_delay_range: tuple[float, float] = (2.0, 5.0)
    page_delay_range: tuple[float, float] = (2.5, 5.0)
    max_pages: int = 100

    @field_validator("settle_delay_range", "page_delay_range", mode="before")
    @classmethod
    def _coerce_delay(cls, value: Any, info) -> tuple[float, float]:
        return _coerce_range(value, info.field_name)

    @model_validator(mode="after")
    def _validate_bounds(self) -> "RetrievalSettings":
        if self.max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        if self.max_pages < 1:
            raise ValueError("max_pages must be >= 1")
        if self.backoff_base_seconds < 0:
            raise ValueError("backoff_base_seconds must be >= 0")
        if self.blocked_backoff_multiplier < 1:
            raise ValueError("blocked_backoff_multiplier must be >= 1")
        return self


class MergeSettings(BaseModel):
    """Batching of the persistence phase."""

    batch_size: int = 10

    @field_validator("batch_size")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("batch_size must be >= 1")
        return value


class JobSettings(BaseModel):
    """Job runner limits and registry retention."""

    default_max_results: int = 100
    max_concurrent_jobs: int = 4
    completed_ttl_seconds: float = 300.0
    failed_ttl_seconds: float = 60.0

    @model_validator(mode="after")
    def _validate_limits(self) -> "JobSettings":
        if self.default_max_results < 1:
            raise ValueError("default_max_results must be >= 1")
        if self.max_concurrent_jobs < 1:
            raise ValueError("max_concurrent_jobs must be >= 1")
        if self.completed_ttl_seconds < 0 or self.failed_ttl_seconds < 0:
            raise ValueError("job retention must be >= 0 seconds")
        return self


class ImporterConfig(BaseModel):
    """Top-level configuration shared by every import job."""

    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    retrieval: RetrievalSettings = Field(default_factory=RetrievalSettings)
    merge: MergeSettings = Field(default_factory=MergeSettings)
    jobs: JobSettings = Field(default_factory=JobSettings)
    store_path: Path = Field(default=Path("data/listings.db"))

    @field_validator("store_path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)

    def resolved_store_path(self, base_dir: Path) -> Path:
        """Return the listing store path relative to the project root."""

        if not self.store_path.is_absolute():
            return (base_dir / self.store_path).resolve()
        return self.store_path


__all__ = [
    "BrowserSettings",
    "DEFAULT_USER_AGENT",
    "ImporterConfig",
    "JobSettings",
    "MergeSettings",
    "RetrievalSettings",
]
