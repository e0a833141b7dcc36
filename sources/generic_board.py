"""Generic HTML job board (Indeed-style search results keyed by data-jk ids)."""

import logging
import re

from bs4 import BeautifulSoup

from models import RawListing
from sources.base import BaseSource, clean_text, find_salary, first_text, parse_posted_date

logger = logging.getLogger(__name__)

RESULTS_PER_PAGE = 10

DESCRIPTION_SELECTORS = (
    "#jobDescriptionText",
    'div[class*="jobsearch-jobDescriptionText"]',
    'div[class*="description"]',
)
SALARY_SELECTORS = (
    '[class*="salary"]',
    '[data-testid*="salary"]',
)
DATE_SELECTORS = (
    '[class*="date"]',
    '[data-testid*="date"]',
)
POSTED_RE = re.compile(r"posted\s*(?:posted\s*)?(\d+\+?\s+days?\s+ago|today|just posted)", re.IGNORECASE)


def _viewjob_path(job_id: str) -> str:
    return f"/viewjob?jk={job_id}"


def parse_data_jk_cards(html: str) -> list[RawListing]:
    """Current layout: <div data-jk> cards with data-testid company/location."""
    soup = BeautifulSoup(html, "html.parser")
    stubs = []
    for card in soup.select("div[data-jk]"):
        title_el = card.select_one("h2 span[title]")
        company_el = card.select_one('[data-testid="company-name"]')
        if not title_el or not company_el:
            continue
        location_el = card.select_one('[data-testid="job-location"]')
        stubs.append(RawListing(
            title=title_el["title"].strip(),
            company=company_el.get_text(strip=True),
            location=location_el.get_text(strip=True) if location_el else "",
            url=_viewjob_path(card["data-jk"]),
        ))
    return stubs


def parse_serp_cards(html: str) -> list[RawListing]:
    """Legacy layout: jobsearch-SerpJobCard with companyName/companyLocation classes."""
    soup = BeautifulSoup(html, "html.parser")
    stubs = []
    for card in soup.select('div[class*="jobsearch-SerpJobCard"]'):
        job_id = card.get("data-jk")
        if not job_id:
            id_el = card.select_one("[data-jk]")
            job_id = id_el["data-jk"] if id_el else None
        title_el = card.select_one("a[title]")
        company_el = card.select_one('[class*="companyName"]')
        if not job_id or not title_el or not company_el:
            continue
        location_el = card.select_one('[class*="companyLocation"]')
        stubs.append(RawListing(
            title=title_el["title"].strip(),
            company=company_el.get_text(strip=True),
            location=location_el.get_text(strip=True) if location_el else "",
            url=_viewjob_path(job_id),
        ))
    return stubs


def parse_article_cards(html: str) -> list[RawListing]:
    """Mobile layout: <article data-jk> with title in h2 and bare spans after it."""
    soup = BeautifulSoup(html, "html.parser")
    stubs = []
    for card in soup.select("article[data-jk]"):
        title_el = card.select_one("h2 span")
        if not title_el:
            continue
        spans = [
            s.get_text(strip=True)
            for s in card.select("span")
            if s is not title_el and s.get_text(strip=True)
        ]
        if not spans:
            continue
        location_el = card.select_one("div")
        stubs.append(RawListing(
            title=title_el.get_text(strip=True),
            company=spans[0],
            location=location_el.get_text(strip=True) if location_el else "",
            url=_viewjob_path(card["data-jk"]),
        ))
    return stubs


class GenericBoardSource(BaseSource):
    name = "generic_board"
    default_base_url = "https://www.indeed.com"
    search_path = "/jobs"
    min_delay_ms = 3000
    techniques = ("direct", "browser_headers", "referer")
    listing_patterns = (parse_data_jk_cards, parse_serp_cards, parse_article_cards)

    def search_params(self, keyword: str, location: str, page: int) -> dict:
        return {
            "q": keyword,
            "l": location,
            "start": str(page * RESULTS_PER_PAGE),
            "sort": "date",
        }

    def parse_detail(self, stub: RawListing, html: str) -> RawListing:
        soup = BeautifulSoup(html, "html.parser")

        description = first_text(soup, DESCRIPTION_SELECTORS)
        if description:
            stub.description = description
        else:
            stub.description = self._synthesized_description(stub)

        salary = first_text(soup, SALARY_SELECTORS) or find_salary(soup.get_text(" "))
        if salary:
            stub.salary = salary

        stub.posted_date = self._posted_date(soup)
        return stub

    def on_detail_failure(self, stub: RawListing) -> RawListing:
        stub.description = self._synthesized_description(stub)
        return stub

    def _posted_date(self, soup: BeautifulSoup):
        date_text = first_text(soup, DATE_SELECTORS)
        if not date_text:
            match = POSTED_RE.search(clean_text(soup.get_text(" ")))
            date_text = match.group(1) if match else ""
        return parse_posted_date(date_text)

    @staticmethod
    def _synthesized_description(stub: RawListing) -> str:
        return (
            f"{stub.title} position at {stub.company} in {stub.location}. "
            f"Sponsorship status should be verified with the employer."
        )
