"""Destination-list store consumed by the merger and the orchestrator."""

from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Iterable, Protocol

from ..errors import PersistenceFailure
from ..models import ListingAddress, ListingList, ListingProjection, RawListing, StoredListing
from .storage import SQLiteManager


class ListingStore(Protocol):
    """Persistence operations the import pipeline relies on."""

    def list_exists(self, list_id: str) -> bool:
        """Return whether a destination list with this id exists."""

    def find_existing_projection(self, list_id: str) -> list[ListingProjection]:
        """Return name/phone/city/state of every listing already in the list."""

    def insert(self, list_id: str, listing: RawListing) -> StoredListing:
        """Persist one listing; raise :class:`PersistenceFailure` on error."""

    def append_ids_and_touch(self, list_id: str, listing_ids: Iterable[str]) -> None:
        """Add listing ids to the list membership and bump its modification time."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SQLiteListingStore:
    """:class:`ListingStore` backed by a single SQLite file."""

    def __init__(self, manager: SQLiteManager, db_path: Path) -> None:
        self.manager = manager
        self.db_path = db_path
        self._lock = Lock()
        self._conn = self.manager.connect(db_path)

    # ------------------------------------------------------------------
    # Lists
    # ------------------------------------------------------------------
    def create_list(self, name: str, description: str = "") -> ListingList:
        name = name.strip()
        if not name:
            raise ValueError("List name cannot be empty")
        list_id = uuid.uuid4().hex
        now = _now()
        with self._lock:
            self._conn.execute(
                "INSERT INTO listing_lists(id, name, description, created_at, last_modified) "
                "VALUES (?, ?, ?, ?, ?)",
                (list_id, name, description, now.isoformat(), now.isoformat()),
            )
            self._conn.commit()
        return ListingList(
            id=list_id, name=name, description=description, created_at=now, last_modified=now
        )

    def get_list(self, list_id: str) -> ListingList | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM listing_lists WHERE id = ?", (list_id,)
            ).fetchone()
            if row is None:
                return None
            members = self._conn.execute(
                "SELECT listing_id FROM list_members WHERE list_id = ? ORDER BY position",
                (list_id,),
            ).fetchall()
        return ListingList(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            listing_ids=[member["listing_id"] for member in members],
            created_at=datetime.fromisoformat(row["created_at"]),
            last_modified=datetime.fromisoformat(row["last_modified"]),
        )

    def list_exists(self, list_id: str) -> bool:
        with self._lock:
            row = self._conn.execute(
                "SELECT 1 FROM listing_lists WHERE id = ?", (list_id,)
            ).fetchone()
        return row is not None

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------
    def find_existing_projection(self, list_id: str) -> list[ListingProjection]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT business_name, business_phone, city, state FROM listings WHERE list_id = ?",
                (list_id,),
            ).fetchall()
        return [
            ListingProjection(
                name=row["business_name"],
                phone=row["business_phone"],
                city=row["city"],
                state=row["state"],
            )
            for row in rows
        ]

    def find_by_list(self, list_id: str) -> list[StoredListing]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM listings WHERE list_id = ? ORDER BY created_at, rowid", (list_id,)
            ).fetchall()
        return [self._row_to_stored(row) for row in rows]

    def insert(self, list_id: str, listing: RawListing) -> StoredListing:
        if not listing.name.strip():
            raise PersistenceFailure("Listing is missing a business name")
        listing_id = uuid.uuid4().hex
        now = _now()
        address = listing.address
        try:
            with self._lock:
                self._conn.execute(
                    """
                    INSERT INTO listings(
                        id, list_id, business_name, type_of_business, business_phone,
                        has_website, website_url, street, apt_unit, city, state, zip_code,
                        country, full_address, status, priority, notes, created_at, last_modified
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        listing_id,
                        list_id,
                        listing.name.strip(),
                        listing.categories,
                        listing.phone,
                        int(bool(listing.website)),
                        listing.website,
                        address.street,
                        address.apt_unit,
                        address.city,
                        address.state,
                        address.zip_code,
                        address.country,
                        listing.full_address,
                        "not-contacted",
                        "low",
                        f"Imported via Business Finder on {now:%m/%d/%Y}",
                        now.isoformat(),
                        now.isoformat(),
                    ),
                )
                self._conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"Could not store {listing.name!r}: {exc}") from exc
        return StoredListing(id=listing_id, list_id=list_id, listing=listing, created_at=now)

    def append_ids_and_touch(self, list_id: str, listing_ids: Iterable[str]) -> None:
        now = _now().isoformat()
        with self._lock:
            row = self._conn.execute(
                "SELECT COALESCE(MAX(position), -1) FROM list_members WHERE list_id = ?",
                (list_id,),
            ).fetchone()
            position = row[0] + 1
            for listing_id in listing_ids:
                cursor = self._conn.execute(
                    "INSERT OR IGNORE INTO list_members(list_id, listing_id, position) VALUES (?, ?, ?)",
                    (list_id, listing_id, position),
                )
                position += cursor.rowcount
            self._conn.execute(
                "UPDATE listing_lists SET last_modified = ? WHERE id = ?", (now, list_id)
            )
            self._conn.commit()

    @staticmethod
    def _row_to_stored(row: sqlite3.Row) -> StoredListing:
        listing = RawListing(
            name=row["business_name"],
            phone=row["business_phone"],
            address=ListingAddress(
                street=row["street"],
                apt_unit=row["apt_unit"],
                city=row["city"],
                state=row["state"],
                zip_code=row["zip_code"],
                country=row["country"],
            ),
            categories=row["type_of_business"],
            website=row["website_url"],
            full_address=row["full_address"],
        )
        return StoredListing(
            id=row["id"],
            list_id=row["list_id"],
            listing=listing,
            created_at=datetime.fromisoformat(row["created_at"]),
        )


__all__ = ["ListingStore", "SQLiteListingStore"]
