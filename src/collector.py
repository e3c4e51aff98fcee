"""
Job Collector - Playwright-based LinkedIn card scanner
Loads the whole virtually-scrolled result list and extracts every card
"""

import logging
import re
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional
from urllib.parse import quote

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

import dom_selectors as sel
from anti_detection import wait_click, wait_navigation
from models import ScrapedPosting, SearchQuery, UNTRUSTED_AGE, VERY_OLD_AGE

logger = logging.getLogger(__name__)

SITE_ORIGIN = "https://www.linkedin.com"
SEARCH_URL = f"{SITE_ORIGIN}/jobs/search/"
MIN_TIME_WINDOW_SECONDS = 3600
MAX_SCROLL_ATTEMPTS = 12
BROWSER_CLOSED_MARKER = "has been closed"

JOB_ID_PATTERNS = [
    re.compile(r"/jobs/view/(?:[^/?#]*-)?(\d+)"),
    re.compile(r"currentJobId=(\d+)"),
    re.compile(r"(\d{8,})"),
]

# Order matters: "mo" must not be read as minutes, "m" must not swallow "min".
RELATIVE_TIME_PATTERNS = [
    (re.compile(r"(\d+)\s*(?:second|sec|s\b)"), 0),
    (re.compile(r"(\d+)\s*(?:minute|min|m\b)"), 1),
    (re.compile(r"(\d+)\s*(?:hour|hr|h\b)"), 60),
    (re.compile(r"(\d+)\s*(?:day|d\b)"), 1440),
    (re.compile(r"(\d+)\s*(?:week|w\b)"), 10080),
    (re.compile(r"(\d+)\s*(?:month|mo\b)"), 43200),
]

CARD_DIAGNOSTICS_JS = """
(selectors) => {
    const body = (document.body && document.body.innerText) || "";
    const found = {};
    for (const s of selectors) {
        try { found[s] = document.querySelectorAll(s).length; } catch (e) {}
    }
    return { bodyPreview: body.slice(0, 300), containers: found };
}
"""

SCROLL_CARD_INTO_VIEW_JS = """
({ selector, index }) => {
    const cards = document.querySelectorAll(selector);
    if (cards[index]) {
        cards[index].scrollIntoView({ block: "center", behavior: "instant" });
    }
}
"""

INNER_TEXT_JS = "el => (el.innerText || '').trim()"


class ScanError(Exception):
    """Raised when a keyword's search page cannot be loaded."""


def new_extraction_stats() -> Dict[str, int]:
    return {"no_title": 0, "no_company": 0, "no_link": 0, "no_id": 0, "success": 0}


# === Pure helpers ===

def build_search_url(query: SearchQuery) -> str:
    """Search URL for past-N-seconds postings, newest first.

    f_TPR=rN is "posted within the last N seconds"; LinkedIn ignores very
    short windows, so it is clamped to at least one hour.
    """
    window = max(query.max_minutes_ago * 60, MIN_TIME_WINDOW_SECONDS)
    url = f"{SEARCH_URL}?keywords={quote(query.keyword, safe='')}&f_TPR=r{window}"
    if query.location:
        url += f"&location={quote(query.location, safe='')}"
    if query.geo_id:
        url += f"&geoId={query.geo_id}"
    return url + "&sortBy=DD"


def extract_job_id(url: str) -> Optional[str]:
    """LinkedIn job id from any accepted URL shape, else None."""
    if not url:
        return None
    for pattern in JOB_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def canonical_link(href: str) -> str:
    """Absolute job URL with tracking query and fragment removed."""
    cleaned = href.strip().split("?")[0].split("#")[0]
    if cleaned.startswith("http"):
        return cleaned
    if not cleaned.startswith("/"):
        cleaned = "/" + cleaned
    return f"{SITE_ORIGIN}{cleaned}"


def clean_title(raw_title: str) -> str:
    """First line of the title, with LinkedIn's doubled "SS" rendering collapsed to "S"."""
    lines = (raw_title or "").strip().split("\n")
    title = lines[0].strip() if lines else ""
    if len(title) > 6:
        half = len(title) // 2
        if title[:half] == title[half:]:
            title = title[:half]
    return title


def parse_relative_time(text: str) -> Optional[int]:
    """Minutes from "37 minutes ago", "2h", "3d", "1mo"... None if unrecognized."""
    lowered = (text or "").lower().strip()
    if not lowered:
        return None
    if "just now" in lowered or "moment" in lowered:
        return 0
    for pattern, factor in RELATIVE_TIME_PATTERNS:
        match = pattern.search(lowered)
        if match:
            return int(match.group(1)) * factor
    return None


def parse_iso_datetime(value: str, now: Optional[datetime] = None) -> Optional[int]:
    """Minutes elapsed since an ISO date or datetime; naive values are read as UTC."""
    raw = (value or "").strip()
    if not raw:
        return None
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    current = now or datetime.now(timezone.utc)
    diff_seconds = (current - parsed).total_seconds()
    if diff_seconds < 0:
        return 0
    return int(round(diff_seconds / 60))


def parse_minutes_ago(text: str, datetime_attr: str = "", authenticated: bool = False,
                      now: Optional[datetime] = None) -> int:
    """Posting age in minutes. Never raises.

    Falls back to UNTRUSTED_AGE for authenticated sessions (the server-side
    time window already applied) and to VERY_OLD_AGE otherwise.
    """
    from_text = parse_relative_time(text)
    if from_text is not None:
        return from_text

    if datetime_attr:
        from_attr = parse_relative_time(datetime_attr)
        if from_attr is not None:
            return from_attr
        from_iso = parse_iso_datetime(datetime_attr, now=now)
        if from_iso is not None:
            return from_iso

    if authenticated:
        return UNTRUSTED_AGE
    if text or datetime_attr:
        logger.warning("Could not parse job posting time (text=%r, datetime=%r)", text, datetime_attr)
    return VERY_OLD_AGE


def build_posting(snapshot: Dict[str, str], authenticated: bool, stats: Dict[str, int],
                  card_index: int = 0) -> Optional[ScrapedPosting]:
    """Turn a card snapshot into a posting; None (and a stats bump) when a field is missing."""
    title = clean_title(snapshot.get("raw_title", ""))
    company = (snapshot.get("raw_company", "") or "").strip().split("\n")[0].strip()
    href = snapshot.get("raw_link", "") or snapshot.get("alternate_link", "")

    if not title or not company or not href:
        logger.debug(
            "Card %s missing data (title=%r, company=%r, link=%r, classes=%r, html=%r)",
            card_index + 1,
            snapshot.get("raw_title", "")[:80],
            company,
            href,
            snapshot.get("classes", ""),
            snapshot.get("html", "")[:500],
        )
        if not title:
            stats["no_title"] += 1
        if not company:
            stats["no_company"] += 1
        if not href:
            stats["no_link"] += 1
        return None

    site_id = extract_job_id(href)
    if not site_id:
        logger.warning("Card %s: could not extract LinkedIn job id (link=%s, title=%s)", card_index + 1, href, title)
        stats["no_id"] += 1
        return None

    date_text = (snapshot.get("date_text", "") or "").strip()
    date_attr = (snapshot.get("date_attr", "") or "").strip()
    minutes_ago = parse_minutes_ago(date_text, date_attr, authenticated=authenticated)

    raw_title = snapshot.get("raw_title", "")
    if raw_title.strip() != title:
        logger.debug("Title cleaned: %r -> %r", raw_title[:60], title)

    return ScrapedPosting(
        site_id=site_id,
        title=title,
        company=company,
        link=canonical_link(href),
        posted_date=date_text or date_attr,
        minutes_ago=minutes_ago,
    )


def time_distribution(postings: List[ScrapedPosting]) -> Dict[str, int]:
    return {
        "<=10m": sum(1 for p in postings if p.minutes_ago <= 10),
        "11-60m": sum(1 for p in postings if 10 < p.minutes_ago <= 60),
        ">1h": sum(1 for p in postings if 60 < p.minutes_ago < VERY_OLD_AGE),
        "unparsed": sum(1 for p in postings if p.minutes_ago == VERY_OLD_AGE),
    }


class JobCollector:
    """Scans LinkedIn search results using the cycle's stealth browser"""

    def __init__(self, config, browser):
        self.config = config
        self.browser = browser
        self.scroll_wait_seconds = 0.8
        self.modal_wait_seconds = 0.5
        self.card_settle_seconds = 0.2
        self.last_stats: Dict[str, int] = new_extraction_stats()

    @property
    def page(self):
        return self.browser.page

    def build_query(self, keyword: str) -> SearchQuery:
        return SearchQuery(
            keyword=keyword,
            location=self.config.get_location(),
            geo_id=self.config.get_geo_id(),
            max_minutes_ago=self.config.get_max_minutes_ago(),
        )

    def _dismiss_modals(self) -> None:
        """Close login/signup modals LinkedIn shows on public pages (best-effort)."""
        try:
            button = self.page.query_selector(sel.MODAL_DISMISS)
            if button:
                button.click()
                logger.debug("Dismissed modal/popup")
                time.sleep(self.modal_wait_seconds)
        except Exception:
            logger.debug("Modal dismissal failed", exc_info=True)

    def _count_cards(self) -> int:
        return int(self.page.eval_on_selector_all(sel.JOB_CARD, "cards => cards.length"))

    def _click_see_more(self) -> None:
        try:
            button = self.page.query_selector(sel.SEE_MORE_BUTTON)
            if button:
                button.click()
                logger.debug("Clicked 'See more jobs'")
                wait_click(self.config)
        except Exception:
            logger.debug("'See more jobs' click failed", exc_info=True)

    def _scroll_to_load_all_cards(self) -> int:
        """Scroll until the card count stops growing.

        The list is not reliably sorted by time, so everything must be loaded
        before filtering. Returns the last observed card count.
        """
        previous_count = 0
        stale_rounds = 0
        for attempt in range(MAX_SCROLL_ATTEMPTS):
            current_count = self._count_cards()
            if current_count == previous_count:
                stale_rounds += 1
                # Be more patient while nothing has rendered yet
                stale_threshold = 4 if current_count == 0 else 2
                if stale_rounds >= stale_threshold:
                    logger.info("All cards loaded: %s total", current_count)
                    break
            else:
                stale_rounds = 0
                logger.debug("Scroll %s: %s -> %s cards", attempt + 1, previous_count, current_count)
            previous_count = current_count

            self.page.evaluate("() => window.scrollTo(0, document.body.scrollHeight)")
            time.sleep(self.scroll_wait_seconds)
            self._dismiss_modals()
            self._click_see_more()
        return previous_count

    def _text_of(self, element) -> str:
        if not element:
            return ""
        try:
            return element.evaluate(INNER_TEXT_JS) or ""
        except Exception:
            logger.debug("innerText read failed", exc_info=True)
            return ""

    def _snapshot_card(self, card) -> Dict[str, str]:
        """Read the handful of elements a posting is built from."""
        link_elem = card.query_selector(sel.JOB_LINK)
        date_elem = card.query_selector(sel.DATE_POSTED)
        snapshot = {
            "raw_title": self._text_of(card.query_selector(sel.JOB_TITLE)),
            "raw_company": self._text_of(card.query_selector(sel.COMPANY_NAME)),
            "raw_link": (link_elem.get_attribute("href") or "") if link_elem else "",
            "alternate_link": "",
            "date_text": "",
            "date_attr": "",
        }
        if not snapshot["raw_link"]:
            anchor = card.query_selector(sel.FALLBACK_JOB_ANCHOR)
            snapshot["alternate_link"] = (anchor.get_attribute("href") or "") if anchor else ""
        if date_elem:
            snapshot["date_text"] = (date_elem.text_content() or "").strip()
            snapshot["date_attr"] = (date_elem.get_attribute("datetime") or "").strip()
        if not (snapshot["raw_title"] and snapshot["raw_company"] and (snapshot["raw_link"] or snapshot["alternate_link"])):
            try:
                snapshot["classes"] = card.evaluate("el => el.className") or ""
                snapshot["html"] = card.evaluate("el => el.innerHTML.slice(0, 500)") or ""
            except Exception:
                logger.debug("Card diagnostics unavailable", exc_info=True)
        return snapshot

    def _log_empty_page(self, keyword: str) -> None:
        try:
            diagnostics = self.page.evaluate(CARD_DIAGNOSTICS_JS, sel.RESULT_CONTAINERS)
        except Exception:
            diagnostics = {}
        logger.warning("No job cards found for '%s' (url=%s, diagnostics=%s)", keyword, self.page.url, diagnostics)

    def _wait_for_cards(self) -> None:
        try:
            self.page.wait_for_selector(sel.JOB_CARD, timeout=10000)
            logger.debug("Job cards detected on page")
        except PlaywrightTimeoutError:
            logger.debug("No job cards appeared within timeout")

    def _load_cards(self, url: str, keyword: str) -> int:
        """Open the search page and scroll until every card is loaded.

        Any page failure here aborts the keyword with ScanError, except a
        closed browser, which is re-raised for the cycle to handle.
        """
        try:
            self.page.goto(url, wait_until="domcontentloaded", timeout=30000)
            wait_navigation(self.config)
            self._dismiss_modals()
            self._wait_for_cards()
            self._scroll_to_load_all_cards()
            return self._count_cards()
        except PlaywrightError as exc:
            if BROWSER_CLOSED_MARKER in str(exc):
                raise
            raise ScanError(f"Failed to load search results for '{keyword}': {exc}") from exc

    def scan_all_cards(self, keyword: str) -> List[ScrapedPosting]:
        """Load every card for a keyword and return postings sorted by age"""
        if self.page is None:
            raise RuntimeError("Browser not launched")

        query = self.build_query(keyword)
        url = build_search_url(query)
        logger.info("Scanning ALL cards for %s: %s", query, url)

        total_cards = self._load_cards(url, keyword)
        logger.info("Total cards loaded for '%s': %s", keyword, total_cards)

        stats = new_extraction_stats()
        self.last_stats = stats
        postings: List[ScrapedPosting] = []
        if total_cards == 0:
            self._log_empty_page(keyword)
            return postings

        # Off-screen cards are empty placeholders: scroll each into view before reading it.
        authenticated = self.browser.authenticated
        for index in range(total_cards):
            try:
                self.page.evaluate(SCROLL_CARD_INTO_VIEW_JS, {"selector": sel.JOB_CARD, "index": index})
                time.sleep(self.card_settle_seconds)
                cards = self.page.query_selector_all(sel.JOB_CARD)
                if index >= len(cards):
                    break
                snapshot = self._snapshot_card(cards[index])
                posting = build_posting(snapshot, authenticated, stats, card_index=index)
                if posting is None:
                    continue
                postings.append(posting)
                stats["success"] += 1
            except Exception as exc:
                if BROWSER_CLOSED_MARKER in str(exc):
                    raise
                logger.warning("Card %s extraction failed: %s", index + 1, exc)

        logger.info("Card extraction stats for '%s': %s", keyword, stats)
        postings.sort(key=lambda p: p.minutes_ago)
        if postings:
            logger.debug("Time distribution for '%s': %s", keyword, time_distribution(postings))
        logger.info("Scan complete for '%s': %s cards extracted from %s total", keyword, len(postings), total_cards)
        return postings
