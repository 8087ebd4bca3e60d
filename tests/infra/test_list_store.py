from __future__ import annotations

from pathlib import Path

import pytest

from listing_importer.errors import PersistenceFailure
from listing_importer.infra import UserAgentPool
from listing_importer.models import ListingProjection


def test_create_and_get_list(listing_store) -> None:
    created = listing_store.create_list("  Springfield plumbers ", "from CLI")

    fetched = listing_store.get_list(created.id)
    assert fetched is not None
    assert fetched.name == "Springfield plumbers"
    assert fetched.description == "from CLI"
    assert fetched.listing_ids == []
    assert listing_store.list_exists(created.id)
    assert not listing_store.list_exists("missing")
    assert listing_store.get_list("missing") is None


def test_create_list_rejects_blank_name(listing_store) -> None:
    with pytest.raises(ValueError):
        listing_store.create_list("   ")


def test_insert_shapes_prospect_record(listing_store, make_listing) -> None:
    target = listing_store.create_list("Prospects")
    listing = make_listing(website="https://acme.example.com", categories="Plumbers")

    stored = listing_store.insert(target.id, listing)

    row = listing_store._conn.execute(
        "SELECT status, priority, notes, country, has_website FROM listings WHERE id = ?",
        (stored.id,),
    ).fetchone()
    assert row["status"] == "not-contacted"
    assert row["priority"] == "low"
    assert row["notes"].startswith("Imported via Business Finder on ")
    assert row["country"] == "USA"
    assert row["has_website"] == 1

    assert listing_store.find_existing_projection(target.id) == [
        ListingProjection(name="Acme Plumbing", phone="(217) 555-0100", city="Springfield", state="IL")
    ]
    [reloaded] = listing_store.find_by_list(target.id)
    assert reloaded.listing.categories == "Plumbers"
    assert reloaded.listing.address.zip_code == "62704"


def test_insert_without_name_raises_persistence_failure(listing_store, make_listing) -> None:
    target = listing_store.create_list("Prospects")
    with pytest.raises(PersistenceFailure):
        listing_store.insert(target.id, make_listing(name="  "))


def test_append_ids_is_idempotent_and_touches_list(listing_store, make_listing) -> None:
    target = listing_store.create_list("Prospects")
    first = listing_store.insert(target.id, make_listing("Acme", "(217) 555-0100"))
    second = listing_store.insert(target.id, make_listing("Bolt", "(217) 555-0101"))

    listing_store.append_ids_and_touch(target.id, [first.id])
    listing_store.append_ids_and_touch(target.id, [first.id, second.id])

    updated = listing_store.get_list(target.id)
    assert updated.listing_ids == [first.id, second.id]
    assert updated.last_modified >= target.last_modified


def test_user_agent_pool_rotates_merged_sources(tmp_path: Path) -> None:
    ua_file = tmp_path / "agents.txt"
    ua_file.write_text("Agent/2\n\n  Agent/3  \nAgent/1\n", encoding="utf-8")

    pool = UserAgentPool(["Agent/1", " "], file_path=ua_file)

    assert len(pool) == 3
    assert [pool.get() for _ in range(4)] == ["Agent/1", "Agent/2", "Agent/3", "Agent/1"]
    assert UserAgentPool().get() is None
