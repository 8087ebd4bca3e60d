"""Engine components: fetch a page, walk the pages, merge into a list."""

from .dedup import DuplicateCheck, DuplicateIndex, locality_key, phone_key
from .fetcher import BrowserSession, ListingFetcher
from .merger import ListingMerger
from .parser import ListingParser, build_search_url, format_phone, parse_address
from .retrieval import CancellationToken, RetrievalEngine
from .thread_pool import ThreadPoolManager

__all__ = [
    "BrowserSession",
    "CancellationToken",
    "DuplicateCheck",
    "DuplicateIndex",
    "ListingFetcher",
    "ListingMerger",
    "ListingParser",
    "RetrievalEngine",
    "ThreadPoolManager",
    "build_search_url",
    "format_phone",
    "locality_key",
    "parse_address",
    "phone_key",
]
