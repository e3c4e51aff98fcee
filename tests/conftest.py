# tests/conftest.py
import subprocess
import sys
from typing import Dict, List, Optional

import pytest

import dom_selectors as sel
from config_loader import ConfigLoader
from job_store import JobStore
from scraper_state import ScraperStateStore


# ---------------------------------------------------------------------
# Config / storage
# ---------------------------------------------------------------------
@pytest.fixture
def make_config(tmp_path):
    """Build a ConfigLoader from a dict with fast, isolated defaults."""

    def _make(**sections) -> ConfigLoader:
        data = {
            "search": {"keywords": ["backend engineer"], "locations": ["United States"], "geo_id": "103644278"},
            "scraper": {
                "interval_minutes": 60,
                "max_minutes_ago": 10,
                "max_consecutive_errors": 5,
                "error_pause_minutes": 30,
                "shutdown_timeout_seconds": 5,
            },
            "browser": {
                "headless": True,
                "navigation_delay_min": 0,
                "navigation_delay_max": 0,
                "click_delay_min": 0,
                "click_delay_max": 0,
            },
            "session": {"cookie_file": str(tmp_path / "cookies.json")},
            "database": {"path": str(tmp_path / "jobs.db")},
            "ai_filter": {"enabled": False},
            "profile": {"summary": "Python backend engineer, 5 years"},
            "agent": {"log_file": str(tmp_path / "logs" / "agent.log")},
            "logging": {"level": "DEBUG", "log_file": str(tmp_path / "logs" / "job_watch.log")},
        }
        for section, values in sections.items():
            if isinstance(values, dict):
                data.setdefault(section, {}).update(values)
            else:
                data[section] = values
        return ConfigLoader.from_dict(data, config_path=str(tmp_path / "settings.yaml"))

    return _make


@pytest.fixture
def config(make_config):
    return make_config()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "jobs.db"


@pytest.fixture
def state_store(db_path):
    return ScraperStateStore(db_path)


@pytest.fixture
def job_store(db_path):
    return JobStore(db_path)


# ---------------------------------------------------------------------
# Processes
# ---------------------------------------------------------------------
@pytest.fixture
def live_pid():
    """A pid that stays alive for the duration of the test."""
    proc = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(60)"])
    yield proc.pid
    proc.kill()
    proc.wait()


@pytest.fixture
def dead_pid():
    """A pid whose process already exited and was reaped."""
    proc = subprocess.Popen([sys.executable, "-c", "pass"])
    proc.wait()
    return proc.pid


# ---------------------------------------------------------------------
# Fake Playwright objects
# ---------------------------------------------------------------------
class FakeElement:
    def __init__(self, text: str = "", attrs: Optional[Dict[str, str]] = None):
        self.text = text
        self.attrs = attrs or {}
        self.clicked = 0

    def evaluate(self, js, arg=None):
        if "innerText" in js:
            return self.text.strip()
        return ""

    def text_content(self):
        return self.text

    def get_attribute(self, name):
        return self.attrs.get(name)

    def click(self):
        self.clicked += 1


class FakeCard:
    """A result card that renders its contents only while scrolled into view."""

    def __init__(self, page, index: int, title: str = "", company: str = "", href: str = "",
                 date_text: str = "", date_attr: str = "", anchor_href: str = ""):
        self.page = page
        self.index = index
        self.children = {}
        if title:
            self.children[sel.JOB_TITLE] = FakeElement(title)
        if company:
            self.children[sel.COMPANY_NAME] = FakeElement(company)
        if href:
            self.children[sel.JOB_LINK] = FakeElement(attrs={"href": href})
        if anchor_href:
            self.children[sel.FALLBACK_JOB_ANCHOR] = FakeElement(attrs={"href": anchor_href})
        if date_text or date_attr:
            self.children[sel.DATE_POSTED] = FakeElement(date_text, attrs={"datetime": date_attr})

    def query_selector(self, selector):
        if self.page.in_view != self.index:
            return None
        return self.children.get(selector)

    def evaluate(self, js, arg=None):
        return ""


class FakeSearchPage:
    """Search results page that reveals `batch` more cards per scroll."""

    def __init__(self, card_specs: List[dict], batch: int = 2, goto_error: Optional[Exception] = None,
                 scroll_errors: Optional[Dict[str, Exception]] = None):
        self.cards = [FakeCard(self, i, **spec) for i, spec in enumerate(card_specs)]
        self.batch = batch
        self.scrolls = 0
        self.in_view: Optional[int] = None
        self.goto_error = goto_error
        self.scroll_errors = scroll_errors or {}
        self.visited: List[str] = []
        self.url = "about:blank"

    @property
    def rendered(self) -> int:
        return min(len(self.cards), self.batch * (self.scrolls + 1))

    def goto(self, url, **kwargs):
        self.visited.append(url)
        if self.goto_error is not None:
            raise self.goto_error
        self.url = url

    def wait_for_selector(self, selector, timeout=None):
        return None

    def query_selector(self, selector):
        return None

    def query_selector_all(self, selector):
        return self.cards[: self.rendered]

    def eval_on_selector_all(self, selector, js):
        return self.rendered

    def evaluate(self, js, arg=None):
        if "scrollTo" in js:
            for url_part, error in self.scroll_errors.items():
                if url_part in self.url:
                    raise error
            self.scrolls += 1
        elif "scrollIntoView" in js:
            self.in_view = arg["index"]
        return {}


class FakeDetailPage:
    """Job detail page with a fixed set of links, optionally bouncing to a login wall."""

    def __init__(self, hrefs: List[str], redirect_to: Optional[str] = None, goto_error: Optional[Exception] = None):
        self.hrefs = hrefs
        self.redirect_to = redirect_to
        self.goto_error = goto_error
        self.url = "about:blank"
        self.visited: List[str] = []

    def goto(self, url, **kwargs):
        self.visited.append(url)
        if self.goto_error is not None:
            raise self.goto_error
        self.url = self.redirect_to or url

    def wait_for_selector(self, selector, timeout=None):
        return None

    def eval_on_selector_all(self, selector, js):
        return list(self.hrefs)


class FakeBrowser:
    def __init__(self, page=None, authenticated: bool = False, launch_error: Optional[Exception] = None):
        self.page = page
        self.authenticated = authenticated
        self.launch_error = launch_error
        self.launched = 0
        self.closed = 0

    def launch(self):
        self.launched += 1
        if self.launch_error is not None:
            raise self.launch_error
        return self.page

    def close(self):
        self.closed += 1

    def invalidate_session(self):
        self.authenticated = False
