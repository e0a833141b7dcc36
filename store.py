"""SQLite repository for sources, runs, employers and listings."""

import json
import logging
import sqlite3
from datetime import datetime, timedelta, timezone

from models import Employer, Listing, RunRecord, Source

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS job_sources (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    source_type TEXT NOT NULL,
    is_active INTEGER DEFAULT 1,
    last_scraped_at TEXT,
    scraping_frequency_hours REAL DEFAULT 24,
    search_keywords TEXT DEFAULT '[]',
    rate_limit_delay_ms INTEGER DEFAULT 2000,
    max_pages_per_run INTEGER DEFAULT 1,
    base_url TEXT DEFAULT '',
    search_location TEXT DEFAULT 'United States'
);

CREATE TABLE IF NOT EXISTS scraping_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    source_id TEXT NOT NULL,
    run_type TEXT DEFAULT 'scheduled',
    status TEXT DEFAULT 'running',
    jobs_found INTEGER DEFAULT 0,
    pages_scraped INTEGER DEFAULT 0,
    jobs_processed INTEGER DEFAULT 0,
    jobs_saved INTEGER DEFAULT 0,
    errors_count INTEGER DEFAULT 0,
    error_details TEXT,
    scrape_errors TEXT DEFAULT '[]',
    started_at TEXT NOT NULL,
    completed_at TEXT
);

CREATE TABLE IF NOT EXISTS companies (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT UNIQUE NOT NULL,
    location TEXT,
    city TEXT,
    state TEXT,
    country TEXT,
    h1b_sponsor_status TEXT,
    industry TEXT
);

CREATE TABLE IF NOT EXISTS jobs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    company_id INTEGER,
    company_name TEXT NOT NULL,
    description TEXT,
    salary_min INTEGER,
    salary_max INTEGER,
    salary_currency TEXT,
    location TEXT,
    city TEXT,
    state TEXT,
    country TEXT,
    remote_friendly INTEGER DEFAULT 0,
    experience_level TEXT,
    industry TEXT,
    job_type TEXT,
    h1b_sponsorship_available INTEGER DEFAULT 0,
    h1b_sponsorship_confidence REAL DEFAULT 0,
    matched_keywords TEXT DEFAULT '[]',
    source_url TEXT,
    source TEXT,
    posted_date TEXT,
    is_active INTEGER DEFAULT 1,
    created_at TEXT,
    updated_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_jobs_title_company ON jobs (title, company_name);
"""

RUN_FIELDS = {
    "status", "jobs_found", "pages_scraped", "jobs_processed", "jobs_saved",
    "errors_count", "error_details", "scrape_errors", "completed_at",
}
FINAL_STATUSES = ("completed", "failed")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_iso(value: datetime | None) -> str | None:
    """Normalize to a UTC ISO string so stored timestamps compare lexically."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="seconds")


def _from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


class JobStore:
    """Repository over a single SQLite file. Opens a connection per call."""

    def __init__(self, db_path: str = "h1b_jobs.db"):
        self.db_path = db_path
        self.init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        conn = self._connect()
        try:
            conn.executescript(SCHEMA)
            conn.commit()
        finally:
            conn.close()

    # --- Sources ---

    def add_source(self, source: Source) -> str:
        conn = self._connect()
        try:
            conn.execute(
                "INSERT INTO job_sources (id, name, source_type, is_active, last_scraped_at, "
                "scraping_frequency_hours, search_keywords, rate_limit_delay_ms, "
                "max_pages_per_run, base_url, search_location) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    source.id,
                    source.name,
                    source.source_type,
                    int(source.is_active),
                    _to_iso(source.last_scraped_at),
                    source.scraping_frequency_hours,
                    json.dumps(source.search_keywords),
                    source.rate_limit_delay_ms,
                    source.max_pages_per_run,
                    source.base_url,
                    source.search_location,
                ),
            )
            conn.commit()
        finally:
            conn.close()
        return source.id

    def sync_sources(self, definitions: list[dict]) -> int:
        """Insert configured sources that are not in the store yet. Returns count added.

        Existing rows are left alone: once stored, a source belongs to the admin surface.
        """
        added = 0
        for definition in definitions:
            if self.get_source(definition["id"]) is not None:
                continue
            self.add_source(Source(**definition))
            added += 1
        if added:
            logger.info(f"Added {added} configured sources to the store")
        return added

    def get_source(self, source_id: str) -> Source | None:
        conn = self._connect()
        try:
            row = conn.execute("SELECT * FROM job_sources WHERE id = ?", (source_id,)).fetchone()
        finally:
            conn.close()
        return self._row_to_source(row) if row else None

    def list_sources(self) -> list[Source]:
        conn = self._connect()
        try:
            rows = conn.execute("SELECT * FROM job_sources ORDER BY id").fetchall()
        finally:
            conn.close()
        return [self._row_to_source(r) for r in rows]

    def list_active_sources(self, ids: list[str] | None = None) -> list[Source]:
        query = "SELECT * FROM job_sources WHERE is_active = 1"
        params: list = []
        if ids:
            query += f" AND id IN ({', '.join('?' for _ in ids)})"
            params.extend(ids)
        query += " ORDER BY id"
        conn = self._connect()
        try:
            rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()
        return [self._row_to_source(r) for r in rows]

    def update_source_last_scraped(self, source_id: str, ts: datetime) -> None:
        self._execute(
            "UPDATE job_sources SET last_scraped_at = ? WHERE id = ?",
            (_to_iso(ts), source_id),
        )

    def set_source_active(self, source_id: str, active: bool) -> bool:
        return self._execute(
            "UPDATE job_sources SET is_active = ? WHERE id = ?",
            (int(active), source_id),
        ) > 0

    # --- Runs ---

    def create_run(self, source_id: str, run_type: str = "scheduled", started_at: datetime | None = None) -> int:
        conn = self._connect()
        try:
            cursor = conn.execute(
                "INSERT INTO scraping_runs (source_id, run_type, status, started_at) "
                "VALUES (?, ?, 'running', ?)",
                (source_id, run_type, _to_iso(started_at or _utcnow())),
            )
            conn.commit()
            return cursor.lastrowid
        finally:
            conn.close()

    def update_run(self, run_id: int, **fields) -> bool:
        """Apply field updates to a running run. Completed/failed runs are immutable."""
        unknown = set(fields) - RUN_FIELDS
        if unknown:
            raise ValueError(f"Unknown run fields: {', '.join(sorted(unknown))}")
        if not fields:
            return False

        current = self.get_run(run_id)
        if current is None:
            raise KeyError(f"Run {run_id} not found")
        if current.status in FINAL_STATUSES:
            logger.warning(f"Ignoring update to run {run_id}: already {current.status}")
            return False

        values = []
        for name, value in fields.items():
            if name in ("error_details", "scrape_errors"):
                value = json.dumps(value) if value is not None else None
            elif name == "completed_at":
                value = _to_iso(value)
            values.append(value)

        assignments = ", ".join(f"{name} = ?" for name in fields)
        self._execute(f"UPDATE scraping_runs SET {assignments} WHERE id = ?", (*values, run_id))
        return True

    def get_run(self, run_id: int) -> RunRecord | None:
        conn = self._connect()
        try:
            row = conn.execute("SELECT * FROM scraping_runs WHERE id = ?", (run_id,)).fetchone()
        finally:
            conn.close()
        return self._row_to_run(row) if row else None

    def list_runs(self, limit: int = 50) -> list[RunRecord]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT * FROM scraping_runs ORDER BY started_at DESC, id DESC LIMIT ?",
                (limit,),
            ).fetchall()
        finally:
            conn.close()
        return [self._row_to_run(r) for r in rows]

    def delete_runs_older_than(self, days: int, now: datetime | None = None) -> int:
        cutoff = _to_iso((now or _utcnow()) - timedelta(days=days))
        return self._execute("DELETE FROM scraping_runs WHERE started_at < ?", (cutoff,))

    # --- Employers ---

    def find_employer_by_name(self, name: str) -> Employer | None:
        conn = self._connect()
        try:
            row = conn.execute("SELECT * FROM companies WHERE name = ?", (name,)).fetchone()
        finally:
            conn.close()
        return self._row_to_employer(row) if row else None

    def get_employer(self, employer_id: int) -> Employer | None:
        conn = self._connect()
        try:
            row = conn.execute("SELECT * FROM companies WHERE id = ?", (employer_id,)).fetchone()
        finally:
            conn.close()
        return self._row_to_employer(row) if row else None

    def create_employer(self, employer: Employer) -> int:
        """Insert an employer. If the name already exists, return the existing id."""
        conn = self._connect()
        try:
            cursor = conn.execute(
                "INSERT INTO companies (name, location, city, state, country, h1b_sponsor_status, industry) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    employer.name,
                    employer.location,
                    employer.city,
                    employer.state,
                    employer.country,
                    employer.h1b_sponsor_status,
                    employer.industry,
                ),
            )
            conn.commit()
            return cursor.lastrowid
        except sqlite3.IntegrityError:
            # Another run created the same employer between our lookup and insert
            row = conn.execute("SELECT id FROM companies WHERE name = ?", (employer.name,)).fetchone()
            if row is None:
                raise
            logger.debug(f"Employer '{employer.name}' created concurrently, reusing id {row['id']}")
            return row["id"]
        finally:
            conn.close()

    # --- Listings ---

    def find_listing(self, title: str, company_name: str) -> Listing | None:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM jobs WHERE title = ? AND company_name = ? AND is_active = 1 "
                "ORDER BY id LIMIT 1",
                (title, company_name),
            ).fetchone()
        finally:
            conn.close()
        return self._row_to_listing(row) if row else None

    def upsert_listing(self, listing: Listing) -> int:
        """Insert a listing, or overwrite the active one with the same title and company."""
        existing_id = listing.id
        if existing_id is None:
            existing = self.find_listing(listing.title, listing.company_name)
            existing_id = existing.id if existing else None

        now = _to_iso(_utcnow())
        columns = {
            "title": listing.title,
            "company_id": listing.employer_id,
            "company_name": listing.company_name,
            "description": listing.description,
            "salary_min": listing.salary_min,
            "salary_max": listing.salary_max,
            "salary_currency": listing.salary_currency,
            "location": listing.location,
            "city": listing.city,
            "state": listing.state,
            "country": listing.country,
            "remote_friendly": int(listing.remote_friendly),
            "experience_level": listing.experience_level,
            "industry": listing.industry,
            "job_type": listing.job_type,
            "h1b_sponsorship_available": int(listing.h1b_sponsorship_available),
            "h1b_sponsorship_confidence": listing.h1b_sponsorship_confidence,
            "matched_keywords": json.dumps(listing.matched_keywords),
            "source_url": listing.source_url,
            "source": listing.source,
            "posted_date": _to_iso(listing.posted_date),
            "is_active": int(listing.is_active),
            "updated_at": now,
        }

        conn = self._connect()
        try:
            if existing_id is not None:
                assignments = ", ".join(f"{name} = ?" for name in columns)
                conn.execute(
                    f"UPDATE jobs SET {assignments} WHERE id = ?",
                    (*columns.values(), existing_id),
                )
                listing_id = existing_id
            else:
                columns["created_at"] = now
                names = ", ".join(columns)
                placeholders = ", ".join("?" for _ in columns)
                cursor = conn.execute(
                    f"INSERT INTO jobs ({names}) VALUES ({placeholders})",
                    tuple(columns.values()),
                )
                listing_id = cursor.lastrowid
            conn.commit()
        finally:
            conn.close()

        listing.id = listing_id
        return listing_id

    def list_listings(self, active_only: bool = False) -> list[Listing]:
        query = "SELECT * FROM jobs"
        if active_only:
            query += " WHERE is_active = 1"
        query += " ORDER BY id"
        conn = self._connect()
        try:
            rows = conn.execute(query).fetchall()
        finally:
            conn.close()
        return [self._row_to_listing(r) for r in rows]

    def deactivate_listings_older_than(self, days: int, now: datetime | None = None) -> int:
        cutoff = _to_iso((now or _utcnow()) - timedelta(days=days))
        return self._execute(
            "UPDATE jobs SET is_active = 0 WHERE is_active = 1 AND posted_date < ?",
            (cutoff,),
        )

    # --- Helpers ---

    def _execute(self, sql: str, params: tuple) -> int:
        """Run a write statement and return the affected row count."""
        conn = self._connect()
        try:
            cursor = conn.execute(sql, params)
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()

    @staticmethod
    def _row_to_source(row: sqlite3.Row) -> Source:
        return Source(
            id=row["id"],
            name=row["name"],
            source_type=row["source_type"],
            is_active=bool(row["is_active"]),
            last_scraped_at=_from_iso(row["last_scraped_at"]),
            scraping_frequency_hours=row["scraping_frequency_hours"],
            search_keywords=json.loads(row["search_keywords"] or "[]"),
            rate_limit_delay_ms=row["rate_limit_delay_ms"],
            max_pages_per_run=row["max_pages_per_run"],
            base_url=row["base_url"] or "",
            search_location=row["search_location"] or "",
        )

    @staticmethod
    def _row_to_run(row: sqlite3.Row) -> RunRecord:
        return RunRecord(
            id=row["id"],
            source_id=row["source_id"],
            run_type=row["run_type"],
            status=row["status"],
            jobs_found=row["jobs_found"],
            pages_scraped=row["pages_scraped"],
            jobs_processed=row["jobs_processed"],
            jobs_saved=row["jobs_saved"],
            errors_count=row["errors_count"],
            error_details=json.loads(row["error_details"]) if row["error_details"] else None,
            scrape_errors=json.loads(row["scrape_errors"] or "[]"),
            started_at=_from_iso(row["started_at"]),
            completed_at=_from_iso(row["completed_at"]),
        )

    @staticmethod
    def _row_to_employer(row: sqlite3.Row) -> Employer:
        return Employer(
            id=row["id"],
            name=row["name"],
            location=row["location"] or "",
            city=row["city"],
            state=row["state"],
            country=row["country"] or "",
            h1b_sponsor_status=row["h1b_sponsor_status"] or "",
            industry=row["industry"] or "",
        )

    @staticmethod
    def _row_to_listing(row: sqlite3.Row) -> Listing:
        return Listing(
            id=row["id"],
            title=row["title"],
            employer_id=row["company_id"],
            company_name=row["company_name"],
            description=row["description"] or "",
            salary_min=row["salary_min"],
            salary_max=row["salary_max"],
            salary_currency=row["salary_currency"] or "",
            location=row["location"] or "",
            city=row["city"],
            state=row["state"],
            country=row["country"] or "",
            remote_friendly=bool(row["remote_friendly"]),
            experience_level=row["experience_level"] or "",
            industry=row["industry"] or "",
            job_type=row["job_type"] or "",
            h1b_sponsorship_available=bool(row["h1b_sponsorship_available"]),
            h1b_sponsorship_confidence=row["h1b_sponsorship_confidence"],
            matched_keywords=json.loads(row["matched_keywords"] or "[]"),
            source_url=row["source_url"] or "",
            source=row["source"] or "",
            posted_date=_from_iso(row["posted_date"]),
            is_active=bool(row["is_active"]),
        )
