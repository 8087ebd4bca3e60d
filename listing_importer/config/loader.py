"""Locate the importer home directory and read/write ``importer.yaml`` there."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .models import ImporterConfig

CONFIG_FILENAME = "importer.yaml"
HOME_ENV_VAR = "LISTING_IMPORTER_HOME"


def _home(project_root: Path | None) -> Path:
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        return Path(override).expanduser().resolve()
    return (project_root or Path(__file__).resolve().parents[2]).resolve()


@dataclass(slots=True)
class ConfigLocator:
    """Paths under the importer home: ``data/`` (config + SQLite store) and ``logs/``.

    ``$LISTING_IMPORTER_HOME`` wins over ``project_root``; both directories are
    created on construction.
    """

    project_root: Path | None = None
    data_dir: Path = field(init=False)
    logs_dir: Path = field(init=False)

    def __post_init__(self) -> None:
        self.project_root = _home(self.project_root)
        self.data_dir = self.project_root / "data"
        self.logs_dir = self.project_root / "logs"
        for directory in (self.data_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def config_path(self) -> Path:
        return self.data_dir / CONFIG_FILENAME


class ConfigRepository:
    """Load ``ImporterConfig`` once, writing the defaults out on first use."""

    def __init__(self, locator: ConfigLocator | None = None) -> None:
        self.locator = locator or ConfigLocator()
        self._cache: ImporterConfig | None = None

    def load(self) -> ImporterConfig:
        if self._cache is None:
            path = self.locator.config_path()
            if path.exists():
                payload = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if not isinstance(payload, dict):
                    raise ValueError(f"Configuration file must contain a mapping: {path}")
                self._cache = ImporterConfig.model_validate(payload)
            else:
                self.save(ImporterConfig())
        return self._cache

    def save(self, config: ImporterConfig) -> None:
        with self.locator.config_path().open("w", encoding="utf-8") as stream:
            yaml.safe_dump(config.model_dump(mode="json"), stream, allow_unicode=True, sort_keys=False)
        self._cache = config

    def store_path(self) -> Path:
        return self.load().resolved_store_path(self.locator.project_root)


__all__ = ["CONFIG_FILENAME", "ConfigLocator", "ConfigRepository", "HOME_ENV_VAR"]
