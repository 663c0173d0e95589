"""
Tests for read-only lookups and the integrity scan.
"""
import pytest
from sqlalchemy import text

from conftest import make_account, make_location
from entity_merge.services.lookup_service import LookupService


@pytest.mark.unit
def test_multi_location_accounts_active_only_with_counts(test_db, multi_account):
    make_account(test_db, "Archived Chain", account_type="multi_location", status="inactive")
    make_account(test_db, "Another Chain", account_type="multi_location")
    test_db.commit()

    accounts = LookupService(test_db).list_multi_location_accounts()

    assert [(a["name"], a["location_count"]) for a in accounts] == [
        ("Another Chain", 0),
        ("Denver Women's Medical Group", 2),
    ]


@pytest.mark.unit
def test_search_by_location_fields(test_db, single_accounts, multi_account):
    results = LookupService(test_db).search_locations("aurora")

    assert [r["name"] for r in results] == ["Denver Aurora"]
    assert results[0]["account_name"] == "Denver Women's Medical Group"
    assert results[0]["account_type"] == "multi_location"


@pytest.mark.unit
def test_search_by_account_name_returns_all_its_locations(test_db, multi_account):
    results = LookupService(test_db).search_locations("women's medical")

    assert sorted(r["name"] for r in results) == ["Denver Aurora", "Denver Downtown"]


@pytest.mark.unit
def test_search_deduplicates(test_db, multi_account):
    """A location matching both by its own fields and its account name appears once."""
    results = LookupService(test_db).search_locations("denver")

    ids = [r["id"] for r in results]
    assert len(ids) == len(set(ids)) == 2


@pytest.mark.unit
def test_integrity_clean(test_db, single_accounts, multi_account):
    report = LookupService(test_db).integrity_report()

    assert report == {"ok": True, "orphans": {}, "type_mismatches": []}


@pytest.mark.unit
def test_integrity_reports_orphans_and_mismatches(test_db):
    single = make_account(test_db, "Two Sites")
    make_location(test_db, single)
    make_location(test_db, single)
    empty = make_account(test_db, "Empty Chain", account_type="multi_location")
    test_db.commit()
    expected = {single.id, empty.id}

    # Bypass foreign keys to plant an orphan
    test_db.execute(text("PRAGMA foreign_keys=OFF"))
    test_db.execute(text(
        "INSERT INTO notes (account_id, content, is_private, created_at, updated_at) "
        "VALUES (9999, 'stray', 0, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)"
    ))
    test_db.commit()
    test_db.execute(text("PRAGMA foreign_keys=ON"))

    report = LookupService(test_db).integrity_report()

    assert report["ok"] is False
    assert list(report["orphans"]) == ["notes.account_id"]
    assert {m["account_id"] for m in report["type_mismatches"]} == expected
