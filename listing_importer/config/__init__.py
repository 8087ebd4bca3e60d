"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    BrowserSettings,
    ImporterConfig,
    JobSettings,
    MergeSettings,
    RetrievalSettings,
)

__all__ = [
    "BrowserSettings",
    "ConfigLocator",
    "ConfigRepository",
    "ImporterConfig",
    "JobSettings",
    "MergeSettings",
    "RetrievalSettings",
]
