from datetime import datetime, timezone

import pytest
from playwright.sync_api import Error as PlaywrightError

from collector import (
    JobCollector,
    ScanError,
    build_posting,
    build_search_url,
    canonical_link,
    clean_title,
    extract_job_id,
    new_extraction_stats,
    parse_iso_datetime,
    parse_minutes_ago,
    parse_relative_time,
)
from conftest import FakeBrowser, FakeSearchPage
from models import SearchQuery, UNTRUSTED_AGE, VERY_OLD_AGE


# ---- Pure helpers -----------------------------------------------------------


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://www.linkedin.com/jobs/view/3812345678/?refId=abc&trackingId=xyz", "3812345678"),
        ("/jobs/view/senior-backend-engineer-at-acme-3812345678?position=1", "3812345678"),
        ("https://www.linkedin.com/jobs/search/?currentJobId=4011122233&keywords=python", "4011122233"),
        ("https://example.com/posting/12345678901", "12345678901"),
        ("https://www.linkedin.com/jobs/search/?keywords=python", None),
        ("", None),
    ],
)
def test_extract_job_id(url, expected):
    assert extract_job_id(url) == expected


def test_canonical_link_strips_tracking_and_absolutizes():
    assert canonical_link("/jobs/view/3812345678/?refId=abc") == "https://www.linkedin.com/jobs/view/3812345678/"
    assert (
        canonical_link("https://www.linkedin.com/jobs/view/3812345678?trk=public#frag")
        == "https://www.linkedin.com/jobs/view/3812345678"
    )


def test_id_is_stable_across_tracking_params():
    a = "https://www.linkedin.com/jobs/view/3812345678/?refId=1"
    b = "https://www.linkedin.com/jobs/view/3812345678/?refId=2&trackingId=9"
    assert canonical_link(a) == canonical_link(b)
    assert extract_job_id(a) == extract_job_id(b)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Backend EngineerBackend Engineer", "Backend Engineer"),
        ("Staff Engineer", "Staff Engineer"),
        ("  Data Engineer\n with verification  ", "Data Engineer"),
        ("abcabc", "abcabc"),
        ("", ""),
    ],
)
def test_clean_title(raw, expected):
    assert clean_title(raw) == expected


@pytest.mark.parametrize(
    "text, expected",
    [
        ("37 minutes ago", 37),
        ("1 hour ago", 60),
        ("2 days ago", 2880),
        ("just now", 0),
        ("A moment ago", 0),
        ("30 seconds ago", 0),
        ("5m", 5),
        ("3h", 180),
        ("1 week ago", 10080),
        ("2 months ago", 86400),
        ("1mo", 43200),
        ("Reposted 4 hours ago", 240),
        ("sometime", None),
        ("", None),
    ],
)
def test_parse_relative_time(text, expected):
    assert parse_relative_time(text) == expected


def test_parse_iso_datetime_elapsed_and_future():
    now = datetime(2026, 2, 19, 17, 0, tzinfo=timezone.utc)
    assert parse_iso_datetime("2026-02-19T16:25:00.000Z", now=now) == 35
    assert parse_iso_datetime("2026-02-19", now=now) == 17 * 60
    assert parse_iso_datetime("2026-02-20T00:00:00Z", now=now) == 0
    assert parse_iso_datetime("not a date", now=now) is None


def test_parse_minutes_ago_falls_back_to_sentinels():
    assert parse_minutes_ago("garbage", "", authenticated=False) == VERY_OLD_AGE
    assert parse_minutes_ago("garbage", "", authenticated=True) == UNTRUSTED_AGE
    assert parse_minutes_ago("", "", authenticated=True) == UNTRUSTED_AGE
    assert parse_minutes_ago("", "2 hours ago") == 120


def test_build_search_url_clamps_time_window():
    query = SearchQuery(keyword="backend engineer", location="United States", geo_id="103644278", max_minutes_ago=10)
    url = build_search_url(query)
    assert url.startswith("https://www.linkedin.com/jobs/search/?keywords=backend%20engineer")
    assert "f_TPR=r3600" in url
    assert "location=United%20States" in url
    assert "geoId=103644278" in url
    assert url.endswith("sortBy=DD")

    wide = build_search_url(SearchQuery(keyword="sre", max_minutes_ago=120))
    assert "f_TPR=r7200" in wide


def test_build_posting_counts_missing_fields():
    stats = new_extraction_stats()
    assert build_posting({"raw_title": "", "raw_company": "Acme", "raw_link": "/jobs/view/12345678/"}, False, stats) is None
    assert build_posting({"raw_title": "Dev", "raw_company": "Acme", "raw_link": "/jobs/search/?x=1"}, False, stats) is None
    assert stats["no_title"] == 1
    assert stats["no_id"] == 1

    posting = build_posting(
        {
            "raw_title": "Backend EngineerBackend Engineer",
            "raw_company": "Acme\nNew York",
            "raw_link": "",
            "alternate_link": "https://www.linkedin.com/jobs/view/3812345678/?trk=x",
            "date_text": "37 minutes ago",
        },
        False,
        stats,
    )
    assert posting.title == "Backend Engineer"
    assert posting.company == "Acme"
    assert posting.site_id == "3812345678"
    assert posting.link == "https://www.linkedin.com/jobs/view/3812345678/"
    assert posting.minutes_ago == 37


# ---- Scanner with a fake page -----------------------------------------------


def _collector(config, page, authenticated=False):
    collector = JobCollector(config, FakeBrowser(page=page, authenticated=authenticated))
    collector.scroll_wait_seconds = 0
    collector.modal_wait_seconds = 0
    collector.card_settle_seconds = 0
    return collector


def test_scan_all_cards_loads_every_card_and_sorts_by_age(config):
    page = FakeSearchPage(
        [
            {"title": "Platform Engineer", "company": "Globex", "href": "/jobs/view/1000000001/?trk=a",
             "date_text": "2 hours ago"},
            {"title": "Backend EngineerBackend Engineer", "company": "Acme", "href": "/jobs/view/1000000002/",
             "date_text": "5 minutes ago"},
            {"title": "No Link Engineer", "company": "Initech"},
            {"title": "Python Developer", "company": "Hooli", "anchor_href": "/jobs/view/python-dev-1000000004"},
            {"title": "Search Page", "company": "Umbrella", "href": "/jobs/search/?keywords=x"},
        ],
        batch=2,
    )
    collector = _collector(config, page)

    postings = collector.scan_all_cards("backend engineer")

    assert page.scrolls >= 3
    assert [p.site_id for p in postings] == ["1000000002", "1000000001", "1000000004"]
    assert postings[0].title == "Backend Engineer"
    assert postings[-1].minutes_ago == VERY_OLD_AGE
    assert collector.last_stats == {"no_title": 0, "no_company": 0, "no_link": 1, "no_id": 1, "success": 3}


def test_scan_authenticated_cards_without_age_are_trusted(config):
    page = FakeSearchPage([{"title": "Backend Engineer", "company": "Acme", "href": "/jobs/view/1000000002/"}])
    postings = _collector(config, page, authenticated=True).scan_all_cards("backend engineer")
    assert postings[0].minutes_ago == UNTRUSTED_AGE


def test_scan_empty_page_returns_nothing(config):
    page = FakeSearchPage([])
    assert _collector(config, page).scan_all_cards("backend engineer") == []


def test_navigation_failure_raises_scan_error(config):
    page = FakeSearchPage([], goto_error=PlaywrightError("net::ERR_TIMED_OUT"))
    with pytest.raises(ScanError):
        _collector(config, page).scan_all_cards("backend engineer")


def test_closed_browser_is_not_a_scan_error(config):
    page = FakeSearchPage([], goto_error=PlaywrightError("Target page, context or browser has been closed"))
    with pytest.raises(PlaywrightError) as excinfo:
        _collector(config, page).scan_all_cards("backend engineer")
    assert not isinstance(excinfo.value, ScanError)


def test_page_error_while_scrolling_raises_scan_error(config):
    page = FakeSearchPage(
        [{"title": "Backend Engineer", "company": "Acme", "href": "/jobs/view/1000000001/"}],
        scroll_errors={"keywords=": PlaywrightError("Execution context was destroyed, most likely because of a navigation")},
    )
    with pytest.raises(ScanError):
        _collector(config, page).scan_all_cards("backend engineer")


def test_browser_closed_while_scrolling_is_not_a_scan_error(config):
    page = FakeSearchPage([], scroll_errors={"keywords=": PlaywrightError("Target page, context or browser has been closed")})
    with pytest.raises(PlaywrightError) as excinfo:
        _collector(config, page).scan_all_cards("backend engineer")
    assert not isinstance(excinfo.value, ScanError)
