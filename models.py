from dataclasses import asdict, dataclass, field
from datetime import datetime


@dataclass
class Source:
    id: str
    name: str
    source_type: str  # "generic_board", "visa_board", etc.
    is_active: bool = True
    last_scraped_at: datetime | None = None
    scraping_frequency_hours: float = 24
    search_keywords: list[str] = field(default_factory=list)
    rate_limit_delay_ms: int = 2000
    max_pages_per_run: int = 1
    base_url: str = ""
    search_location: str = "United States"


@dataclass
class RawListing:
    title: str
    company: str
    location: str = ""
    description: str = ""
    url: str = ""
    salary: str | None = None
    posted_date: datetime | None = None
    job_type: str = "Full-time"
    source: str = ""


@dataclass
class ClassificationResult:
    confidence: float
    matched_keywords: list[str] = field(default_factory=list)
    negative_indicators: list[str] = field(default_factory=list)
    explicit_matches: int = 0
    implicit_matches: int = 0
    negative_matches: int = 0
    total_score: float = 0.0

    @property
    def analysis_details(self) -> dict:
        return {
            "explicit_matches": self.explicit_matches,
            "implicit_matches": self.implicit_matches,
            "negative_matches": self.negative_matches,
            "total_score": self.total_score,
        }


@dataclass
class Employer:
    name: str
    location: str = ""
    city: str | None = None
    state: str | None = None
    country: str = "United States"
    h1b_sponsor_status: str = "Possible"  # "Active" or "Possible"
    industry: str = "Other"
    id: int | None = None


@dataclass
class Listing:
    title: str
    company_name: str
    employer_id: int | None = None
    description: str = ""
    salary_min: int | None = None
    salary_max: int | None = None
    salary_currency: str = "USD"
    location: str = ""
    city: str | None = None
    state: str | None = None
    country: str = "United States"
    remote_friendly: bool = False
    experience_level: str = "Mid"
    industry: str = "Other"
    job_type: str = "Full-time"
    h1b_sponsorship_available: bool = False
    h1b_sponsorship_confidence: float = 0.0
    matched_keywords: list[str] = field(default_factory=list)
    source_url: str = ""
    source: str = ""
    posted_date: datetime | None = None
    is_active: bool = True
    id: int | None = None


@dataclass
class RunRecord:
    id: int
    source_id: str
    run_type: str = "scheduled"  # "scheduled" or "manual"
    status: str = "running"  # "running", "completed", "failed"
    jobs_found: int = 0
    pages_scraped: int = 0
    jobs_processed: int = 0
    jobs_saved: int = 0
    errors_count: int = 0
    error_details: dict | None = None
    scrape_errors: list[str] = field(default_factory=list)
    started_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass
class RobotsCheckResult:
    allowed: bool
    crawl_delay_ms: int
    reason: str = ""
    sitemaps: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ScrapeResult:
    listings: list[RawListing] = field(default_factory=list)
    total_found: int = 0
    pages_scraped: int = 0
    errors: list[str] = field(default_factory=list)
    robots_compliance: RobotsCheckResult | None = None
    technique_used: str = ""
    cancelled: bool = False


@dataclass
class ProcessingResult:
    processed_count: int = 0
    total_input: int = 0
    errors_count: int = 0
    errors: list[str] = field(default_factory=list)
    classified_count: int = 0


@dataclass
class OrchestrationResult:
    runs_executed: int = 0
    total_jobs_scraped: int = 0
    total_jobs_processed: int = 0
    errors: list[str] = field(default_factory=list)
    sources_processed: list[str] = field(default_factory=list)
    robots_compliance_summary: list[dict] = field(default_factory=list)
    execution_time_ms: int = 0
    cancelled: bool = False

    def to_dict(self) -> dict:
        return asdict(self)
