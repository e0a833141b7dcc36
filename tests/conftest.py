"""Shared test fixtures for the H1B jobs pipeline test suite."""

import json
import os

import pytest

from models import RawListing, Source

FIXTURES_DIR = os.path.join(os.path.dirname(__file__), "fixtures")


def _load_sample_settings():
    with open(os.path.join(FIXTURES_DIR, "sample_settings.json")) as f:
        return json.load(f)


@pytest.fixture(autouse=True)
def mock_settings(monkeypatch):
    """Autouse fixture that injects known test settings for every test.

    Resets settings._settings so get_settings() returns the test data,
    and calls config.reload() to refresh all config globals.
    """
    import config
    import settings

    data = _load_sample_settings()
    monkeypatch.delenv("H1B_DB_PATH", raising=False)
    monkeypatch.setattr(settings, "_settings", data)
    config.reload()
    yield data


@pytest.fixture
def no_sleep(monkeypatch):
    """Make adapters skip their inter-request pauses. Returns the requested pause lengths."""
    from sources.base import BaseSource

    pauses = []

    def _pause(self, seconds):
        pauses.append(seconds)
        return self._cancel.is_set()

    monkeypatch.setattr(BaseSource, "_pause", _pause)
    return pauses


@pytest.fixture
def make_raw_listing():
    """Factory fixture for creating RawListing instances with defaults."""

    def _make(**overrides):
        defaults = {
            "title": "Software Engineer",
            "company": "Acme Corp",
            "location": "Austin, TX",
            "description": "Build backend services. We offer H1B sponsorship for qualified candidates.",
            "url": "https://jobs.example.com/viewjob?jk=1",
            "salary": "$120,000 - $150,000 a year",
            "source": "generic_board",
        }
        defaults.update(overrides)
        return RawListing(**defaults)

    return _make


@pytest.fixture
def make_source():
    """Factory fixture for creating Source instances with defaults."""

    def _make(**overrides):
        defaults = {
            "id": "test-board",
            "name": "Test Board",
            "source_type": "generic_board",
            "search_keywords": ["h1b sponsorship"],
            "rate_limit_delay_ms": 0,
            "max_pages_per_run": 1,
            "base_url": "https://jobs.example.com",
        }
        defaults.update(overrides)
        return Source(**defaults)

    return _make


@pytest.fixture
def tmp_store(tmp_path):
    """A JobStore backed by a temporary SQLite file."""
    from store import JobStore

    return JobStore(str(tmp_path / "test_jobs.db"))


@pytest.fixture
def fixture_path():
    """Return the path to the fixtures directory."""
    return FIXTURES_DIR


def load_fixture(filename):
    """Load a fixture file by name."""
    path = os.path.join(FIXTURES_DIR, filename)
    with open(path) as f:
        if filename.endswith(".json"):
            return json.load(f)
        return f.read()
