"""
Stealth Browser - Playwright Chromium with randomized fingerprint,
stealth evasions and the saved LinkedIn session
"""

import logging
import time
from typing import Optional
from playwright.sync_api import sync_playwright, Page, Browser, BrowserContext, Playwright
from playwright_stealth.stealth import Stealth

from anti_detection import browser_launch_options
from session_store import load_cookies, are_cookies_valid, validate_session

logger = logging.getLogger(__name__)


class StealthBrowser:
    """One browser instance scoped to a single scrape cycle"""

    def __init__(self, config):
        self.config = config
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None
        self._authenticated = False

    @property
    def authenticated(self) -> bool:
        """Whether the current session holds a validated LinkedIn login"""
        return self._authenticated

    def invalidate_session(self) -> None:
        """Drop authenticated mode for the rest of this browser's lifetime"""
        if self._authenticated:
            logger.warning("LinkedIn session no longer valid - authenticated features disabled")
        self._authenticated = False

    def launch(self) -> Page:
        """Start Chromium, apply stealth, load cookies and validate the session"""
        options = browser_launch_options(self.config)
        viewport = options["viewport"]
        logger.info(
            "Launching browser (headless=%s, viewport=%sx%s)",
            options["headless"],
            viewport["width"],
            viewport["height"],
        )

        launch_start = time.monotonic()
        self.playwright = sync_playwright().start()
        self.browser = self.playwright.chromium.launch(
            headless=options["headless"],
            args=options["args"],
        )
        logger.info("Chromium process started in %.0fms", (time.monotonic() - launch_start) * 1000)

        self.context = self.browser.new_context(
            viewport=viewport,
            user_agent=options["user_agent"],
        )

        if self.config.use_stealth():
            try:
                Stealth().apply_stealth_sync(self.context)
                logger.info("Playwright stealth enabled")
            except Exception as exc:
                logger.warning("Failed to enable stealth mode: %s", exc)

        cookies = load_cookies(self.config.get_cookie_file())
        has_session = are_cookies_valid(cookies)
        if has_session:
            self.context.add_cookies(cookies)
            logger.info("LinkedIn cookies loaded into browser context")

        self.page = self.context.new_page()

        if has_session:
            self._authenticated = validate_session(self.page)
            if not self._authenticated:
                logger.warning(
                    "LinkedIn session expired or invalid. Run `job-watch login` to re-authenticate. "
                    "Continuing without authentication - apply links will not be extracted."
                )
        else:
            logger.info("No LinkedIn cookies found. Run `job-watch login` to enable apply link extraction.")

        logger.info("Browser page ready (authenticated=%s)", self._authenticated)
        return self.page

    def close(self) -> None:
        """Clean up browser resources"""
        try:
            if self.context:
                self.context.close()
        except Exception:
            logger.debug("Browser context close failed", exc_info=True)
        try:
            if self.browser:
                self.browser.close()
        except Exception:
            logger.debug("Browser close failed", exc_info=True)
        try:
            if self.playwright:
                self.playwright.stop()
        except Exception:
            logger.debug("Playwright stop failed", exc_info=True)
        self.page = None
        self.context = None
        self.browser = None
        self.playwright = None
        logger.info("Browser closed")
