"""Normalize, classify, deduplicate and persist scraped listings."""

import logging
import re
from collections.abc import Callable
from datetime import datetime, timezone

import config
from classifier import classify
from models import ClassificationResult, Employer, Listing, ProcessingResult, RawListing
from store import JobStore

logger = logging.getLogger(__name__)

REMOTE_KEYWORDS = ["remote", "work from home", "telecommute", "distributed"]

SENIOR_SIGNALS = ["senior", "lead", "principal"]
ENTRY_SIGNALS = ["junior", "entry", "new grad"]

# Checked in order; first bucket with a title hit wins
INDUSTRY_BUCKETS = [
    ("Technology", ["software", "developer", "engineer"]),
    ("Data Science", ["data", "analytics", "scientist"]),
    ("Product Management", ["product", "manager"]),
    ("Finance", ["finance", "financial"]),
]

SALARY_TOKEN_RE = re.compile(r"(\d[\d,]*(?:\.\d+)?)\s*([kK])?")


def parse_salary(text: str | None) -> tuple[int | None, int | None]:
    """Extract (min, max) from free salary text.

    '$120,000 - $150,000' -> (120000, 150000); '$95,000' -> (95000, None);
    '120K-140K' -> (120000, 140000); 'competitive' -> (None, None).
    """
    if not text:
        return None, None

    values = []
    for number, thousands in SALARY_TOKEN_RE.findall(text):
        try:
            value = float(number.replace(",", ""))
        except ValueError:
            continue
        if thousands:
            value *= 1000
        values.append(int(value))

    if not values:
        return None, None
    if len(values) == 1:
        return values[0], None
    return min(values), max(values)


def parse_location(location: str) -> tuple[str | None, str | None, str]:
    """Split 'City, ST' into (city, state, country)."""
    parts = [p.strip() for p in (location or "").split(",")]
    if len(parts) >= 2:
        return parts[0] or None, parts[1] or None, config.DEFAULT_COUNTRY
    city = (location or "").strip()
    return city or None, None, config.DEFAULT_COUNTRY


def detect_remote(raw: RawListing) -> bool:
    haystacks = [raw.title.lower(), raw.description.lower(), raw.location.lower()]
    return any(kw in text for kw in REMOTE_KEYWORDS for text in haystacks)


def infer_experience_level(title: str, description: str) -> str:
    text = f"{title} {description}".lower()
    if any(signal in text for signal in SENIOR_SIGNALS):
        return "Senior"
    if any(signal in text for signal in ENTRY_SIGNALS):
        return "Entry"
    return "Mid"


def infer_industry(title: str) -> str:
    title_lower = title.lower()
    for industry, keywords in INDUSTRY_BUCKETS:
        if any(kw in title_lower for kw in keywords):
            return industry
    return "Other"


def fallback_classification() -> ClassificationResult:
    return ClassificationResult(confidence=config.FALLBACK_CONFIDENCE)


class JobRecordProcessor:
    """Turns RawListings into persisted Listings, one listing at a time.

    A failure on one listing is recorded and the batch moves on. When a run
    id is given, the run is closed with the final counts.
    """

    def __init__(
        self,
        store: JobStore,
        classifier: Callable[..., ClassificationResult] = classify,
    ):
        self.store = store
        self.classifier = classifier

    def process(
        self,
        raw_listings: list[RawListing],
        run_id: int | None = None,
        cancelled: bool = False,
    ) -> ProcessingResult:
        result = ProcessingResult(total_input=len(raw_listings))

        for raw in raw_listings:
            try:
                saved = self._process_one(raw, result)
            except Exception as e:
                logger.warning(f"Error processing job {raw.title}: {e}")
                result.errors.append(f"Error processing job {raw.title}: {e}")
                continue
            if saved:
                result.processed_count += 1

        result.errors_count = len(result.errors)
        logger.info(
            f"Processed {result.total_input} listings: {result.processed_count} saved, "
            f"{result.errors_count} errors"
        )

        if run_id is not None:
            self._close_run(run_id, result, cancelled)

        return result

    def _process_one(self, raw: RawListing, result: ProcessingResult) -> bool:
        """Returns True when a listing was written, False for a skipped duplicate."""
        classification = self._classify(raw)
        if classification is not None:
            result.classified_count += 1
        else:
            classification = fallback_classification()

        salary_min, salary_max = parse_salary(raw.salary)
        city, state, country = parse_location(raw.location)
        industry = infer_industry(raw.title)

        if self.store.find_listing(raw.title, raw.company) is not None:
            logger.debug(f"Duplicate job found: {raw.title} at {raw.company}")
            return False

        employer_id = self._resolve_employer(raw, city, state, country, industry, classification)

        listing = Listing(
            title=raw.title,
            company_name=raw.company,
            employer_id=employer_id,
            description=raw.description,
            salary_min=salary_min,
            salary_max=salary_max,
            salary_currency=config.DEFAULT_CURRENCY,
            location=raw.location,
            city=city,
            state=state,
            country=country,
            remote_friendly=detect_remote(raw),
            experience_level=infer_experience_level(raw.title, raw.description),
            industry=industry,
            job_type=raw.job_type or config.DEFAULT_JOB_TYPE,
            h1b_sponsorship_available=classification.confidence > config.SPONSORSHIP_THRESHOLD,
            h1b_sponsorship_confidence=classification.confidence,
            matched_keywords=list(classification.matched_keywords),
            source_url=raw.url,
            source=raw.source,
            posted_date=raw.posted_date or datetime.now(timezone.utc),
            is_active=True,
        )
        self.store.upsert_listing(listing)
        return True

    def _classify(self, raw: RawListing) -> ClassificationResult | None:
        try:
            return self.classifier(raw.description, raw.title, raw.company)
        except Exception as e:
            logger.warning(f"Classification failed for '{raw.title}', using fallback: {e}")
            return None

    def _resolve_employer(
        self,
        raw: RawListing,
        city: str | None,
        state: str | None,
        country: str,
        industry: str,
        classification: ClassificationResult,
    ) -> int:
        existing = self.store.find_employer_by_name(raw.company)
        if existing is not None:
            return existing.id

        employer = Employer(
            name=raw.company,
            location=raw.location,
            city=city,
            state=state,
            country=country,
            h1b_sponsor_status="Active" if classification.confidence > config.SPONSORSHIP_THRESHOLD else "Possible",
            industry=industry,
        )
        employer_id = self.store.create_employer(employer)
        logger.info(f"Created employer '{raw.company}' ({employer.h1b_sponsor_status})")
        return employer_id

    def _close_run(self, run_id: int, result: ProcessingResult, cancelled: bool = False) -> None:
        failed = result.total_input > 0 and result.errors_count == result.total_input
        details = {}
        if result.errors:
            details["errors"] = result.errors
        if cancelled:
            details["cancelled"] = "Scrape cancelled before completion; listings are partial"
        try:
            self.store.update_run(
                run_id,
                jobs_processed=result.total_input,
                jobs_saved=result.processed_count,
                errors_count=result.errors_count,
                error_details=details or None,
                status="failed" if failed else "completed",
                completed_at=datetime.now(timezone.utc),
            )
        except Exception as e:
            logger.error(f"Failed to update run {run_id}: {e}")
            result.errors.append(f"Failed to update run {run_id}: {e}")
            result.errors_count = len(result.errors)
