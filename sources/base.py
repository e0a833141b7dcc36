import logging
import re
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta, timezone
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

import config
from models import RawListing, RobotsCheckResult, ScrapeResult
from robots import RobotsPolicyChecker

logger = logging.getLogger(__name__)

ListingPattern = Callable[[str], list[RawListing]]

RELEVANCE_TERMS = ("h1b", "visa", "sponsor")

SALARY_RE = re.compile(r"\$[\d,]+(?:\s*-\s*\$[\d,]+)?(?:\s*(?:per|an?)\s+\w+)?", re.IGNORECASE)

BASE_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

# Header variations tried in order when a site answers 403. The bot
# User-Agent is sent with every technique.
TECHNIQUE_HEADERS = {
    "direct": {},
    "browser_headers": {
        "Accept-Encoding": "gzip, deflate",
        "Connection": "keep-alive",
        "Upgrade-Insecure-Requests": "1",
    },
    "referer": {
        "Cache-Control": "max-age=0",
    },
}


class ScrapeCancelled(Exception):
    """Raised inside an adapter when the pass-level cancel event is set."""


class FetchBlocked(Exception):
    """Every fetch technique was answered with HTTP 403."""


def first_match(patterns: Sequence[ListingPattern], html: str) -> list[RawListing]:
    """Try each parsing pattern in order; the first non-empty result wins."""
    for pattern in patterns:
        try:
            found = pattern(html)
        except Exception as e:
            logger.debug(f"Pattern {pattern.__name__} failed: {e}")
            continue
        if found:
            return found
    return []


def first_text(soup: BeautifulSoup, selectors: Sequence[str]) -> str:
    """Text of the first selector that matches a non-empty element."""
    for selector in selectors:
        el = soup.select_one(selector)
        if el is None:
            continue
        text = clean_text(el.get_text(" ", strip=True))
        if text:
            return text
    return ""


def clean_text(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def find_salary(text: str) -> str | None:
    match = SALARY_RE.search(text or "")
    return match.group(0) if match else None


def parse_posted_date(text: str, now: datetime | None = None) -> datetime | None:
    """Parse 'Posted 3 days ago', 'Just posted', 'Today' or an ISO date."""
    if not text:
        return None

    now = now or datetime.now(timezone.utc)
    text_lower = text.lower()

    if "today" in text_lower or "just posted" in text_lower:
        return now

    match = re.search(r"(\d+)\+?\s+(hour|day|week|month)", text_lower)
    if match:
        amount = int(match.group(1))
        unit = match.group(2)
        if unit == "hour":
            return now - timedelta(hours=amount)
        elif unit == "day":
            return now - timedelta(days=amount)
        elif unit == "week":
            return now - timedelta(weeks=amount)
        return now - timedelta(days=amount * 30)

    iso = re.search(r"\d{4}-\d{2}-\d{2}", text)
    if iso:
        try:
            return datetime.fromisoformat(iso.group(0)).replace(tzinfo=timezone.utc)
        except ValueError:
            return None

    return None


def is_relevant(keyword: str, description: str) -> bool:
    """Cheap sponsorship pre-filter; the classifier makes the real call later."""
    keyword_lower = keyword.lower()
    desc_lower = description.lower()
    if any(term in keyword_lower or term in desc_lower for term in RELEVANCE_TERMS):
        return True
    return len(description) > config.MIN_DESCRIPTION_LENGTH


class BaseSource(ABC):
    """Abstract base class for all scraped job boards.

    Subclasses provide the search URL parameters, an ordered list of listing
    patterns, and detail-page parsing. The base class owns robots.txt
    compliance, request spacing, fetch techniques and error isolation.
    """

    name: str = "base"
    default_base_url: str = ""
    search_path: str = "/jobs"
    min_delay_ms: int = 2000
    techniques: tuple[str, ...] = ("direct",)
    listing_patterns: tuple[ListingPattern, ...] = ()
    fetch_details: bool = True

    def __init__(
        self,
        robots: RobotsPolicyChecker | None = None,
        session: requests.Session | None = None,
        base_url: str | None = None,
        min_delay_ms: int | None = None,
    ):
        self.session = session or requests.Session()
        self.robots = robots or RobotsPolicyChecker(session=self.session)
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        if min_delay_ms is not None:
            self.min_delay_ms = min_delay_ms
        self.delay_ms = self.min_delay_ms
        self._cancel = threading.Event()
        self._last_request_at: float | None = None
        self._technique_start = 0

    @property
    def search_url(self) -> str:
        return f"{self.base_url}{self.search_path}"

    @abstractmethod
    def search_params(self, keyword: str, location: str, page: int) -> dict:
        """Query parameters for result page `page` (0-based)."""
        ...

    @abstractmethod
    def parse_detail(self, stub: RawListing, html: str) -> RawListing:
        """Fill description, salary and posted date from a detail page."""
        ...

    def on_detail_failure(self, stub: RawListing) -> RawListing | None:
        """Listing to keep when its detail page could not be fetched. Drops by default."""
        return None

    def scrape(
        self,
        keywords: list[str],
        location: str = "",
        max_pages: int = 1,
        respect_robots: bool = True,
        cancel: threading.Event | None = None,
    ) -> ScrapeResult:
        """Scrape keywords x pages. Never raises; failures land in result.errors."""
        self._cancel = cancel or threading.Event()
        self._last_request_at = None
        self._technique_start = 0
        result = ScrapeResult()

        compliance = self._check_robots(respect_robots)
        result.robots_compliance = compliance
        if not compliance.allowed:
            logger.warning(f"[{self.name}] Blocked by robots.txt: {compliance.reason}")
            result.errors.append(f"Scraping not allowed by robots.txt: {compliance.reason}")
            return result

        self.delay_ms = max(compliance.crawl_delay_ms, self.min_delay_ms)
        logger.info(f"[{self.name}] Using {self.delay_ms}ms between requests")

        seen_urls: set[str] = set()
        try:
            for keyword in keywords:
                for page in range(max_pages):
                    try:
                        self._scrape_page(keyword, location, page, result, seen_urls)
                    except FetchBlocked:
                        logger.warning(f"[{self.name}] All techniques blocked for '{keyword}', skipping remaining pages")
                        break
                    except ScrapeCancelled:
                        raise
                    except Exception as e:
                        logger.warning(f"[{self.name}] Error scraping page {page + 1} for '{keyword}': {e}")
                        result.errors.append(f"Error scraping page {page + 1} for '{keyword}': {e}")
        except ScrapeCancelled:
            logger.info(f"[{self.name}] Cancelled, returning {len(result.listings)} partial listings")
            result.errors.append("Scrape cancelled before completion")
            result.cancelled = True

        logger.info(
            f"[{self.name}] Scraped {result.pages_scraped} pages, "
            f"kept {result.total_found} listings, {len(result.errors)} errors"
        )
        return result

    def _check_robots(self, respect_robots: bool) -> RobotsCheckResult:
        if not respect_robots:
            return RobotsCheckResult(
                allowed=True,
                crawl_delay_ms=self.min_delay_ms,
                reason="Robots check disabled",
            )
        try:
            compliance = self.robots.check(self.search_url, config.BOT_NAME)
        except Exception as e:
            logger.warning(f"[{self.name}] Robots check error: {e}")
            compliance = RobotsCheckResult(
                allowed=True,
                crawl_delay_ms=config.FAIL_OPEN_DELAY_MS,
                reason=f"Robots check error, using conservative delay: {e}",
            )
        # The robots.txt fetch counts as our first request to the host
        self._last_request_at = time.monotonic()
        return compliance

    def _scrape_page(
        self,
        keyword: str,
        location: str,
        page: int,
        result: ScrapeResult,
        seen_urls: set[str],
    ) -> None:
        params = self.search_params(keyword, location, page)
        html = self._fetch(self.search_url, result, params=params)
        if html is None:
            return

        stubs = first_match(self.listing_patterns, html)
        result.pages_scraped += 1
        if not stubs:
            logger.info(f"[{self.name}] No listings parsed on page {page + 1} for '{keyword}'")
            return

        pending = []
        for stub in stubs:
            stub.url = urljoin(self.base_url + "/", stub.url)
            if stub.url in seen_urls:
                continue
            seen_urls.add(stub.url)
            stub.source = self.name
            if not stub.location:
                stub.location = location
            pending.append(stub)

        for i, stub in enumerate(pending):
            try:
                listing = self._complete(stub, result)
            except ScrapeCancelled:
                # Stubs already parsed from the search page are kept without details
                for left in pending[i:]:
                    self._keep(keyword, self.on_detail_failure(left), result)
                raise
            except Exception as e:
                logger.debug(f"[{self.name}] Failed to process '{stub.title}': {e}")
                result.errors.append(f"Error processing job {stub.title}: {e}")
                continue

            self._keep(keyword, listing, result)

    def _keep(self, keyword: str, listing: RawListing | None, result: ScrapeResult) -> None:
        if listing is None:
            return
        if not is_relevant(keyword, listing.description):
            logger.debug(f"[{self.name}] Skipping irrelevant listing: {listing.title}")
            return
        result.listings.append(listing)
        result.total_found += 1

    def _complete(self, stub: RawListing, result: ScrapeResult) -> RawListing | None:
        if not self.fetch_details:
            return stub
        try:
            html = self._fetch(stub.url, result)
        except FetchBlocked:
            html = None
        if html is None:
            result.errors.append(f"Failed to fetch job details for {stub.url}")
            return self.on_detail_failure(stub)
        return self.parse_detail(stub, html)

    def _fetch(self, url: str, result: ScrapeResult, params: dict | None = None) -> str | None:
        """GET with technique fallthrough on 403. Returns None on any other failure.

        Starts from the technique that last succeeded during this scrape.
        """
        for index in range(self._technique_start, len(self.techniques)):
            technique = self.techniques[index]
            self._wait_turn()
            try:
                resp = self.session.get(
                    url,
                    params=params,
                    headers=self._headers_for(technique),
                    timeout=config.REQUEST_TIMEOUT_SEC,
                )
            except requests.RequestException as e:
                logger.warning(f"[{self.name}] Request failed for {url}: {e}")
                result.errors.append(f"Request failed for {url}: {e}")
                return None
            finally:
                # The gap is measured from when the previous response finished
                self._last_request_at = time.monotonic()

            if resp.ok:
                result.technique_used = technique
                self._technique_start = index
                return resp.text
            if resp.status_code == 403:
                logger.info(f"[{self.name}] 403 with technique {technique}, trying next")
                result.errors.append(f"HTTP 403 with technique {technique} for {url}")
                continue

            logger.warning(f"[{self.name}] HTTP {resp.status_code} for {url}")
            result.errors.append(f"HTTP {resp.status_code} for {url}")
            return None

        raise FetchBlocked(url)

    def _headers_for(self, technique: str) -> dict:
        headers = {**BASE_HEADERS, "User-Agent": config.USER_AGENT}
        headers.update(TECHNIQUE_HEADERS.get(technique, {}))
        if technique == "referer":
            headers["Referer"] = f"{self.base_url}/"
        return headers

    def _wait_turn(self) -> None:
        """Keep at least delay_ms between consecutive requests from this adapter."""
        if self._cancel.is_set():
            raise ScrapeCancelled()
        if self._last_request_at is not None:
            remaining = self.delay_ms / 1000 - (time.monotonic() - self._last_request_at)
            if remaining > 0 and self._pause(remaining):
                raise ScrapeCancelled()

    def _pause(self, seconds: float) -> bool:
        """Sleep up to `seconds`. Returns True if the pass was cancelled meanwhile."""
        return self._cancel.wait(seconds)
