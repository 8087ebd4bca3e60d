"""Infra layer utilities (storage, list store, UA pool)."""

from .list_store import ListingStore, SQLiteListingStore
from .storage import SQLiteManager
from .ua_pool import UserAgentPool

__all__ = ["ListingStore", "SQLiteListingStore", "SQLiteManager", "UserAgentPool"]
