"""Case-insensitive composite keys used to spot duplicate listings."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Protocol


class _Keyed(Protocol):
    name: str
    phone: str

    @property
    def city(self) -> str: ...

    @property
    def state(self) -> str: ...


def phone_key(name: str, phone: str) -> str | None:
    """``name|phone``; absent when the listing has no phone."""

    if not phone:
        return None
    return f"{name}|{phone}".lower()


def locality_key(name: str, city: str, state: str) -> str | None:
    """``name|city|state``; absent unless both city and state are known."""

    if not (city and state):
        return None
    return f"{name}|{city}|{state}".lower()


@dataclass
class DuplicateCheck:
    phone_duplicate: bool
    locality_duplicate: bool

    @property
    def is_duplicate(self) -> bool:
        return self.phone_duplicate or self.locality_duplicate


@dataclass
class DuplicateIndex:
    """Two lookup sets of keys; a listing matching either one is a duplicate."""

    phone_keys: set[str] = field(default_factory=set)
    locality_keys: set[str] = field(default_factory=set)

    @classmethod
    def from_records(cls, records: Iterable[_Keyed]) -> "DuplicateIndex":
        index = cls()
        for record in records:
            index.add(record)
        return index

    def check(self, record: _Keyed) -> DuplicateCheck:
        by_phone = phone_key(record.name, record.phone)
        by_locality = locality_key(record.name, record.city, record.state)
        return DuplicateCheck(
            phone_duplicate=by_phone is not None and by_phone in self.phone_keys,
            locality_duplicate=by_locality is not None and by_locality in self.locality_keys,
        )

    def add(self, record: _Keyed) -> None:
        by_phone = phone_key(record.name, record.phone)
        by_locality = locality_key(record.name, record.city, record.state)
        if by_phone is not None:
            self.phone_keys.add(by_phone)
        if by_locality is not None:
            self.locality_keys.add(by_locality)

    def __len__(self) -> int:
        return len(self.phone_keys) + len(self.locality_keys)


def unique_by_phone_key(listings: Iterable[_Keyed]) -> list:
    """Drop repeats of ``name|phone`` (case-insensitive), keeping first-seen order."""

    seen: set[str] = set()
    unique = []
    for listing in listings:
        key = f"{listing.name}|{listing.phone}".lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(listing)
    return unique


__all__ = [
    "DuplicateCheck",
    "DuplicateIndex",
    "locality_key",
    "phone_key",
    "unique_by_phone_key",
]
