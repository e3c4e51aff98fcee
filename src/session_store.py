"""
Session Store - LinkedIn cookie persistence and session validation
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

SESSION_COOKIE = "li_at"
FEED_URL = "https://www.linkedin.com/feed/"
LOGIN_WALL_MARKERS = ("/login", "/authwall", "/checkpoint")


def load_cookies(path: Path) -> Optional[List[dict]]:
    """Load saved cookies; None when missing or malformed."""
    if not path.exists():
        return None
    try:
        cookies = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Failed to load LinkedIn cookies from %s: %s", path, exc)
        return None
    if not isinstance(cookies, list):
        logger.warning("Cookie file %s is not a JSON array", path)
        return None
    return cookies


def save_cookies(cookies: List[dict], path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(cookies, indent=2), encoding="utf-8")
    logger.info("LinkedIn cookies saved (%s cookies) to %s", len(cookies), path)


def are_cookies_valid(cookies: Optional[List[dict]], now: Optional[float] = None) -> bool:
    """Check for a present, unexpired li_at session cookie.

    ``expires`` is a unix timestamp in seconds; -1 (or missing) marks a
    session cookie with no expiry.
    """
    if not cookies:
        return False
    li_at = next((c for c in cookies if isinstance(c, dict) and c.get("name") == SESSION_COOKIE), None)
    if li_at is None:
        logger.warning("No li_at cookie found - session is not authenticated")
        return False

    try:
        expires = float(li_at.get("expires", -1) or -1)
    except (TypeError, ValueError):
        expires = -1
    current = time.time() if now is None else now
    if 0 < expires < current:
        expired_at = datetime.fromtimestamp(expires, tz=timezone.utc).isoformat()
        logger.warning("li_at cookie has expired (%s)", expired_at)
        return False
    return True


def is_login_wall(url: str) -> bool:
    lowered = (url or "").lower()
    return any(marker in lowered for marker in LOGIN_WALL_MARKERS)


def validate_session(page) -> bool:
    """Load the feed and check we were not bounced to a login wall.

    LinkedIn can revoke sessions server-side, so cookie freshness alone is
    not enough.
    """
    try:
        page.goto(FEED_URL, wait_until="domcontentloaded", timeout=15000)
    except Exception as exc:
        logger.warning("Session validation failed: %s", exc)
        return False

    current_url = page.url
    if is_login_wall(current_url):
        logger.warning("LinkedIn session is invalid - redirected to %s", current_url)
        return False
    logger.info("LinkedIn session is valid")
    return True
