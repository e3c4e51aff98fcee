"""
Apply-Link Resolver - classify a posting's application flow from its detail page
"""

import logging
import time
from typing import Iterable, Tuple
from urllib.parse import parse_qs, urlparse

import dom_selectors as sel
from anti_detection import wait_navigation
from collector import BROWSER_CLOSED_MARKER, SITE_ORIGIN
from models import ScrapedPosting
from session_store import is_login_wall

logger = logging.getLogger(__name__)

EXTERNAL = "external"
EASY_APPLY = "easy_apply"
NOT_FOUND = "not_found"

REDIRECT_PATH = "/redir/redirect"


def classify_apply_hrefs(hrefs: Iterable[str], site_id: str) -> Tuple[str, str]:
    """Return (kind, url) for the first apply link found among the hrefs.

    An external apply is a LinkedIn redirect wrapper carrying the destination
    in its ``url`` query parameter; an in-site apply points at the posting's
    own ``/apply`` flow and yields no URL.
    """
    easy_apply_path = f"/jobs/view/{site_id}/apply"
    for href in hrefs:
        if not href:
            continue
        if REDIRECT_PATH in href:
            target = parse_qs(urlparse(href).query).get("url")
            if target and target[0]:
                return EXTERNAL, target[0]
        if easy_apply_path in href:
            return EASY_APPLY, ""
    return NOT_FOUND, ""


class ApplyLinkResolver:
    """Visits job detail pages with the cycle's authenticated browser"""

    def __init__(self, config, browser):
        self.config = config
        self.browser = browser
        self.settle_seconds = 1.5

    @property
    def page(self):
        return self.browser.page

    def resolve(self, posting: ScrapedPosting) -> str:
        """External apply URL for the posting, or "" when there is none."""
        if not self.browser.authenticated:
            return ""

        url = f"{SITE_ORIGIN}/jobs/view/{posting.site_id}/"
        try:
            self.page.goto(url, wait_until="domcontentloaded", timeout=15000)
            try:
                self.page.wait_for_selector(sel.DETAIL_PAGE, timeout=8000)
            except Exception:
                logger.debug("Detail page container not found for %s", posting.site_id)
            time.sleep(self.settle_seconds)

            if is_login_wall(self.page.url):
                logger.warning("Redirected to %s while resolving %s", self.page.url, posting.site_id)
                self.browser.invalidate_session()
                return ""

            hrefs = self.page.eval_on_selector_all("a[href]", "links => links.map(a => a.href)")
            kind, apply_url = classify_apply_hrefs(hrefs or [], posting.site_id)
            if kind == EXTERNAL:
                logger.info("External apply link for %s: %s", posting.site_id, apply_url)
            elif kind == EASY_APPLY:
                logger.info("Easy Apply job %s - no external link", posting.site_id)
            else:
                logger.info("No apply link found for %s (%s)", posting.site_id, posting.title)
            return apply_url
        except Exception as exc:
            if BROWSER_CLOSED_MARKER in str(exc):
                raise
            logger.warning("Failed to extract apply link for %s: %s", posting.site_id, exc)
            return ""
        finally:
            wait_navigation(self.config)
