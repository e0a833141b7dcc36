"""Tests for sources/visa_board.py — MyVisaJobs-style H1B board."""

from datetime import datetime, timezone

import responses

from sources.visa_board import VisaBoardSource, parse_job_cards, parse_job_rows
from tests.conftest import load_fixture

BASE = "https://www.myvisajobs.com"
SEARCH_URL = f"{BASE}/Jobs/Search"


def _mock_board(search_fixture="visa_search.html", detail_status=200):
    responses.add(responses.GET, f"{BASE}/robots.txt", status=404)
    responses.add(responses.GET, SEARCH_URL, body=load_fixture(search_fixture), status=200)
    detail = load_fixture("visa_detail.html")
    for job_id in ("1001", "1002", "2001", "2002"):
        if detail_status == 200:
            responses.add(responses.GET, f"{BASE}/Jobs/Details/{job_id}", body=detail, status=200)
        else:
            responses.add(responses.GET, f"{BASE}/Jobs/Details/{job_id}", status=detail_status)


def test_parse_job_rows():
    stubs = parse_job_rows(load_fixture("visa_search.html"))

    assert [s.title for s in stubs] == ["Software Engineer", "Data Analyst"]
    assert stubs[0].company == "Infosys"
    assert stubs[0].location == "Seattle, WA"
    assert stubs[0].url == "/Jobs/Details/1001"
    assert stubs[0].salary == "$110,000 - $130,000"
    assert stubs[1].salary is None


def test_parse_job_cards_skips_wrappers():
    html = load_fixture("visa_cards.html")
    assert parse_job_rows(html) == []

    stubs = parse_job_cards(html)

    assert [s.title for s in stubs] == ["ML Engineer", "QA Engineer"]
    assert stubs[0].company == "DeepCo"
    assert stubs[0].location == "Austin, TX"
    assert stubs[1].location == ""


def test_unknown_company_default():
    html = '<table><tr class="job"><td><a href="/Jobs/Details/9">Analyst</a></td></tr></table>'
    assert parse_job_rows(html)[0].company == "Unknown Company"


def test_search_params_one_based_page():
    params = VisaBoardSource().search_params("software engineer", "United States", 0)
    assert params == {
        "job_title": "software engineer",
        "location": "United States",
        "visa": "H1B",
        "page": "1",
    }


@responses.activate
def test_scrape_rows_with_details(no_sleep):
    _mock_board()

    result = VisaBoardSource().scrape(["software engineer"], "United States")

    assert result.total_found == 2
    assert result.errors == []
    first = result.listings[0]
    assert first.url == f"{BASE}/Jobs/Details/1001"
    assert first.source == "visa_board"
    assert "distributed systems" in first.description
    assert "visa sponsorship" in first.description
    assert first.salary == "$110,000 - $130,000"
    assert first.posted_date == datetime(2026, 10, 10, tzinfo=timezone.utc)


@responses.activate
def test_scrape_falls_back_to_card_layout(no_sleep):
    _mock_board(search_fixture="visa_cards.html")

    result = VisaBoardSource().scrape(["software engineer"], "United States")

    assert [l.title for l in result.listings] == ["ML Engineer", "QA Engineer"]
    # Missing card location is filled from the search location
    assert result.listings[1].location == "United States"


@responses.activate
def test_detail_failure_drops_listing(no_sleep):
    _mock_board(detail_status=404)

    result = VisaBoardSource().scrape(["software engineer"], "United States")

    assert result.listings == []
    assert result.pages_scraped == 1
    assert len([e for e in result.errors if e.startswith("Failed to fetch job details")]) == 2


@responses.activate
def test_fail_open_delay_applies(no_sleep):
    _mock_board()

    source = VisaBoardSource()
    result = source.scrape(["software engineer"], "United States")

    assert result.robots_compliance.crawl_delay_ms == 2000
    assert source.delay_ms == 2000


@responses.activate
def test_page_parameter_sent(no_sleep):
    _mock_board()

    VisaBoardSource().scrape(["software engineer"], "United States", max_pages=2)

    search_calls = [c for c in responses.calls if c.request.url.startswith(SEARCH_URL)]
    assert "page=1" in search_calls[0].request.url
    assert "page=2" in search_calls[1].request.url
