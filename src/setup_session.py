#!/usr/bin/env python3

"""
Session Setup - log in to LinkedIn by hand and save the session cookies
"""

import sys

from playwright.sync_api import sync_playwright
from playwright_stealth.stealth import Stealth

from anti_detection import BASE_LAUNCH_ARGS
from config_loader import DEFAULT_CONFIG_PATH, load_config
from session_store import are_cookies_valid, is_login_wall, save_cookies, validate_session

LOGIN_URL = "https://www.linkedin.com/login"


def setup_session(config) -> bool:
    """Open a visible browser for manual login, then save and validate cookies"""
    cookie_file = config.get_cookie_file()

    print("\n" + "="*60)
    print("🔐 LINKEDIN SESSION SETUP")
    print("="*60)
    print("\nThis will open a browser window.")
    print("1. Log in to LinkedIn (complete any verification it asks for)")
    print("2. Wait for your feed to load")
    print("3. Press Enter here when done")
    print(f"\nCookies will be saved to {cookie_file}")
    print("\n" + "="*60 + "\n")

    with sync_playwright() as p:
        browser = p.chromium.launch(headless=False, args=list(BASE_LAUNCH_ARGS))
        context = browser.new_context(viewport={"width": 1280, "height": 800})
        if config.use_stealth():
            Stealth().apply_stealth_sync(context)
        page = context.new_page()

        print("🌐 Opening LinkedIn login...")
        page.goto(LOGIN_URL, wait_until="domcontentloaded")

        input("\n✋ Log in, wait for the feed to load, then press Enter...")

        if is_login_wall(page.url):
            print("\n⚠️  Still on a login page. Finish logging in and run this again.")
            browser.close()
            return False

        cookies = context.cookies()
        if not are_cookies_valid(cookies):
            print("\n⚠️  No LinkedIn session cookie found. Make sure the login completed.")
            browser.close()
            return False

        save_cookies(cookies, cookie_file)
        valid = validate_session(page)
        browser.close()

    if valid:
        print(f"\n✅ Session saved to {cookie_file}")
        print("\n   You can now start the agent: job-watch agent start")
    else:
        print(f"\n⚠️  Cookies saved to {cookie_file}, but LinkedIn rejected the session.")
    return valid


if __name__ == "__main__":
    config_path = sys.argv[1] if len(sys.argv) > 1 else DEFAULT_CONFIG_PATH
    sys.exit(0 if setup_session(load_config(config_path)) else 1)
