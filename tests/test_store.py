"""Tests for store.py — SQLite repository."""

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from models import Employer, Listing
from store import JobStore

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


def _listing(**overrides):
    defaults = {
        "title": "Software Engineer",
        "company_name": "Acme Corp",
        "description": "Build services.",
        "posted_date": NOW,
    }
    defaults.update(overrides)
    return Listing(**defaults)


def test_init_creates_tables(tmp_path):
    db_path = str(tmp_path / "jobs.db")
    JobStore(db_path)
    conn = sqlite3.connect(db_path)
    tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    conn.close()
    assert {"job_sources", "scraping_runs", "companies", "jobs"} <= tables


def test_source_round_trip(tmp_store, make_source):
    last = datetime(2026, 10, 18, 8, 30, tzinfo=timezone.utc)
    tmp_store.add_source(make_source(last_scraped_at=last, search_keywords=["h1b", "visa"]))

    source = tmp_store.get_source("test-board")

    assert source.name == "Test Board"
    assert source.search_keywords == ["h1b", "visa"]
    assert source.last_scraped_at == last
    assert source.is_active is True


def test_get_source_missing(tmp_store):
    assert tmp_store.get_source("nope") is None


def test_sync_sources_inserts_only_missing(tmp_store, mock_settings):
    added = tmp_store.sync_sources(mock_settings["sources"])
    assert added == 2

    tmp_store.set_source_active("indeed-h1b", False)
    assert tmp_store.sync_sources(mock_settings["sources"]) == 0
    # Existing rows keep their stored state
    assert tmp_store.get_source("indeed-h1b").is_active is False


def test_list_active_sources_filters(tmp_store, make_source):
    tmp_store.add_source(make_source(id="a"))
    tmp_store.add_source(make_source(id="b", is_active=False))
    tmp_store.add_source(make_source(id="c"))

    assert [s.id for s in tmp_store.list_active_sources()] == ["a", "c"]
    assert [s.id for s in tmp_store.list_active_sources(["c", "b"])] == ["c"]
    assert [s.id for s in tmp_store.list_sources()] == ["a", "b", "c"]


def test_update_source_last_scraped(tmp_store, make_source):
    tmp_store.add_source(make_source())
    tmp_store.update_source_last_scraped("test-board", NOW)
    assert tmp_store.get_source("test-board").last_scraped_at == NOW


def test_set_source_active_unknown(tmp_store):
    assert tmp_store.set_source_active("nope", False) is False


def test_create_and_update_run(tmp_store):
    run_id = tmp_store.create_run("test-board", "manual", started_at=NOW)

    assert tmp_store.update_run(run_id, jobs_found=5, pages_scraped=2, scrape_errors=["HTTP 500 for x"])

    run = tmp_store.get_run(run_id)
    assert run.status == "running"
    assert run.run_type == "manual"
    assert run.jobs_found == 5
    assert run.pages_scraped == 2
    assert run.scrape_errors == ["HTTP 500 for x"]
    assert run.started_at == NOW


def test_update_run_unknown_field(tmp_store):
    run_id = tmp_store.create_run("test-board")
    with pytest.raises(ValueError):
        tmp_store.update_run(run_id, bogus=1)


def test_update_run_missing(tmp_store):
    with pytest.raises(KeyError):
        tmp_store.update_run(999, jobs_found=1)


def test_completed_run_is_immutable(tmp_store):
    run_id = tmp_store.create_run("test-board")
    tmp_store.update_run(run_id, status="completed", jobs_saved=3, completed_at=NOW)

    assert tmp_store.update_run(run_id, status="failed", jobs_saved=0) is False

    run = tmp_store.get_run(run_id)
    assert run.status == "completed"
    assert run.jobs_saved == 3
    assert run.completed_at == NOW


def test_error_details_json(tmp_store):
    run_id = tmp_store.create_run("test-board")
    tmp_store.update_run(run_id, status="failed", error_details={"error": "boom"})
    assert tmp_store.get_run(run_id).error_details == {"error": "boom"}


def test_list_runs_newest_first(tmp_store):
    older = tmp_store.create_run("a", started_at=NOW - timedelta(hours=2))
    newer = tmp_store.create_run("b", started_at=NOW)
    assert [r.id for r in tmp_store.list_runs()] == [newer, older]
    assert len(tmp_store.list_runs(limit=1)) == 1


def test_delete_runs_older_than(tmp_store):
    tmp_store.create_run("a", started_at=NOW - timedelta(days=8))
    kept = tmp_store.create_run("b", started_at=NOW - timedelta(days=6))

    assert tmp_store.delete_runs_older_than(7, now=NOW) == 1
    assert [r.id for r in tmp_store.list_runs()] == [kept]


def test_create_employer_duplicate_returns_existing(tmp_store):
    first = tmp_store.create_employer(Employer(name="Acme Corp", h1b_sponsor_status="Active"))
    second = tmp_store.create_employer(Employer(name="Acme Corp"))

    assert first == second
    assert tmp_store.get_employer(first).h1b_sponsor_status == "Active"
    assert tmp_store.find_employer_by_name("Acme Corp").id == first


def test_find_employer_missing(tmp_store):
    assert tmp_store.find_employer_by_name("Nobody") is None


def test_upsert_inserts_then_updates(tmp_store):
    listing = _listing(matched_keywords=["h1b sponsorship"], h1b_sponsorship_confidence=0.85)
    listing_id = tmp_store.upsert_listing(listing)
    assert listing.id == listing_id

    again = _listing(description="Updated description.")
    assert tmp_store.upsert_listing(again) == listing_id

    stored = tmp_store.list_listings()
    assert len(stored) == 1
    assert stored[0].description == "Updated description."


def test_listing_round_trip(tmp_store):
    tmp_store.upsert_listing(_listing(
        salary_min=120000,
        salary_max=150000,
        remote_friendly=True,
        h1b_sponsorship_available=True,
        h1b_sponsorship_confidence=0.85,
        matched_keywords=["h1b sponsorship"],
    ))

    stored = tmp_store.find_listing("Software Engineer", "Acme Corp")

    assert stored.salary_min == 120000
    assert stored.salary_max == 150000
    assert stored.remote_friendly is True
    assert stored.h1b_sponsorship_available is True
    assert stored.h1b_sponsorship_confidence == pytest.approx(0.85)
    assert stored.matched_keywords == ["h1b sponsorship"]
    assert stored.posted_date == NOW


def test_find_listing_ignores_inactive(tmp_store):
    tmp_store.upsert_listing(_listing(is_active=False))
    assert tmp_store.find_listing("Software Engineer", "Acme Corp") is None


def test_deactivate_listings_older_than(tmp_store):
    tmp_store.upsert_listing(_listing(title="Old Role", posted_date=NOW - timedelta(days=31)))
    tmp_store.upsert_listing(_listing(title="Fresh Role", posted_date=NOW - timedelta(days=2)))

    assert tmp_store.deactivate_listings_older_than(30, now=NOW) == 1

    active = tmp_store.list_listings(active_only=True)
    assert [l.title for l in active] == ["Fresh Role"]
