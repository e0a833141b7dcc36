"""Tests for config.py — configuration loading from settings."""

import config


def test_reload_updates_globals(monkeypatch):
    """After changing settings + reload(), config globals reflect new values."""
    import settings

    new_settings = {
        "bot_name": "TestBot",
        "contact_url": "https://test.example",
        "db_path": "other.db",
        "listing_retention_days": 14,
        "run_retention_days": 3,
        "pass_time_budget_sec": 60,
        "sources": [{"id": "x", "name": "X", "source_type": "visa_board"}],
    }
    monkeypatch.setattr(settings, "_settings", new_settings)
    config.reload()

    assert config.BOT_NAME == "TestBot"
    assert config.USER_AGENT == "TestBot/1.0 (+https://test.example)"
    assert config.DB_PATH == "other.db"
    assert config.LISTING_RETENTION_DAYS == 14
    assert config.RUN_RETENTION_DAYS == 3
    assert config.PASS_TIME_BUDGET_SEC == 60
    assert config.SOURCES[0]["id"] == "x"


def test_defaults_when_keys_missing(monkeypatch):
    import settings

    monkeypatch.setattr(settings, "_settings", {})
    config.reload()

    assert config.BOT_NAME == "H1BJobsBot"
    assert config.USER_AGENT.startswith("H1BJobsBot/1.0 (+")
    assert config.DB_PATH == "h1b_jobs.db"
    assert config.REPORTS_DIR == "reports/"
    assert config.SOURCES == []
    assert config.LISTING_RETENTION_DAYS == 30
    assert config.RUN_RETENTION_DAYS == 7
    assert config.PASS_TIME_BUDGET_SEC is None


def test_db_path_env_override(monkeypatch):
    monkeypatch.setenv("H1B_DB_PATH", "/tmp/override.db")
    config.reload()
    assert config.DB_PATH == "/tmp/override.db"


def test_sample_sources_loaded(mock_settings):
    assert [s["id"] for s in config.SOURCES] == ["indeed-h1b", "myvisajobs"]


def test_fixed_constants():
    assert config.FAIL_OPEN_DELAY_MS >= 2000
    assert config.DEFAULT_CRAWL_DELAY_MS == 1000
    assert config.SPONSORSHIP_THRESHOLD == 0.6
    assert config.FALLBACK_CONFIDENCE == 0.3
    assert config.ROBOTS_TIMEOUT_SEC == 10
    assert config.REQUEST_TIMEOUT_SEC == 30
