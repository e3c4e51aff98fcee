"""
Anti-Detection - randomized browser fingerprint and human-like pacing
"""

import random
import time
from typing import Dict, List

# Real desktop user agents, rotated per browser launch
USER_AGENTS = [
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.3 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:123.0) Gecko/20100101 Firefox/123.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:123.0) Gecko/20100101 Firefox/123.0",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
]

VIEWPORT_SIZES = [
    {"width": 1920, "height": 1080},
    {"width": 1366, "height": 768},
    {"width": 1440, "height": 900},
    {"width": 1536, "height": 864},
    {"width": 1680, "height": 1050},
]

BASE_LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
]


def random_user_agent() -> str:
    return random.choice(USER_AGENTS)


def random_viewport() -> Dict[str, int]:
    return dict(random.choice(VIEWPORT_SIZES))


def random_delay_ms(min_ms: int, max_ms: int) -> int:
    """Random delay in milliseconds, inclusive on both ends."""
    if max_ms < min_ms:
        min_ms, max_ms = max_ms, min_ms
    return random.randint(int(min_ms), int(max_ms))


def _sleep_between(bounds: tuple) -> None:
    min_s, max_s = bounds
    time.sleep(random_delay_ms(int(min_s * 1000), int(max_s * 1000)) / 1000.0)


def wait_navigation(config) -> None:
    """Pause for a random navigation delay (2-5s by default)"""
    _sleep_between(config.get_navigation_delay())


def wait_click(config) -> None:
    """Pause for a random click delay (1-3s by default)"""
    _sleep_between(config.get_click_delay())


def browser_launch_options(config) -> dict:
    """Launch and context options with a fresh randomized fingerprint"""
    viewport = random_viewport()
    args: List[str] = list(BASE_LAUNCH_ARGS)
    args.append(f"--window-size={viewport['width']},{viewport['height']}")
    return {
        "headless": config.is_headless(),
        "args": args,
        "viewport": viewport,
        "user_agent": random_user_agent(),
    }
