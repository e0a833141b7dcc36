"""Specialized H1B visa job board (MyVisaJobs-style result tables)."""

import logging

from bs4 import BeautifulSoup

from models import RawListing
from sources.base import BaseSource, find_salary, first_text, parse_posted_date

logger = logging.getLogger(__name__)

DETAIL_LINK = 'a[href*="/Jobs/Details/"]'
COMPANY_SELECTORS = ('td[class*="company"]', 'span[class*="company"]', 'div[class*="company"]')
LOCATION_SELECTORS = ('td[class*="location"]', 'span[class*="location"]', 'div[class*="location"]')

DESCRIPTION_SELECTORS = ('div[class*="description"]', 'div[id*="description"]')
H1B_INFO_SELECTORS = ('div[class*="h1b"]', 'span[class*="visa"]')
SALARY_SELECTORS = ('[class*="salary"]', '[class*="wage"]')
DATE_SELECTORS = ('[class*="date"]', '[class*="posted"]')


def _stub_from_block(block, title: str, link) -> RawListing:
    return RawListing(
        title=title,
        company=first_text(block, COMPANY_SELECTORS) or "Unknown Company",
        location=first_text(block, LOCATION_SELECTORS),
        url=link["href"],
        salary=find_salary(block.get_text(" ")),
    )


def parse_job_rows(html: str) -> list[RawListing]:
    """Table layout: <tr class="job..."> rows linking to /Jobs/Details/<id>."""
    soup = BeautifulSoup(html, "html.parser")
    stubs = []
    for row in soup.select('tr[class*="job"]'):
        link = row.select_one(DETAIL_LINK)
        if not link:
            continue
        title = link.get_text(strip=True)
        if not title:
            continue
        stubs.append(_stub_from_block(row, title, link))
    return stubs


def parse_job_cards(html: str) -> list[RawListing]:
    """Card layout: <div class="job..."> blocks with a heading and a details link."""
    soup = BeautifulSoup(html, "html.parser")
    stubs = []
    for card in soup.select('div[class*="job"]'):
        links = card.select(DETAIL_LINK)
        # Skip wrappers around several cards
        if len(links) != 1:
            continue
        link = links[0]
        heading = card.select_one("h1, h2, h3, h4, h5, h6, strong")
        title = heading.get_text(strip=True) if heading else link.get_text(strip=True)
        if not title:
            continue
        stubs.append(_stub_from_block(card, title, link))
    return stubs


class VisaBoardSource(BaseSource):
    """Every listing on this board is an H1B posting; detail pages carry the
    description and the employer's visa notes. Listings whose detail page
    cannot be fetched are dropped."""

    name = "visa_board"
    default_base_url = "https://www.myvisajobs.com"
    search_path = "/Jobs/Search"
    min_delay_ms = 2000
    listing_patterns = (parse_job_rows, parse_job_cards)

    def search_params(self, keyword: str, location: str, page: int) -> dict:
        return {
            "job_title": keyword,
            "location": location,
            "visa": "H1B",
            "page": str(page + 1),
        }

    def parse_detail(self, stub: RawListing, html: str) -> RawListing:
        soup = BeautifulSoup(html, "html.parser")

        description = first_text(soup, DESCRIPTION_SELECTORS)
        h1b_info = first_text(soup, H1B_INFO_SELECTORS)
        if not description:
            description = f"{stub.title} position at {stub.company} in {stub.location or 'various locations'}."
        stub.description = f"{description} {h1b_info}".strip()

        if not stub.salary:
            stub.salary = first_text(soup, SALARY_SELECTORS) or None

        stub.posted_date = parse_posted_date(first_text(soup, DATE_SELECTORS))
        return stub
