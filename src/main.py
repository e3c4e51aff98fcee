#!/usr/bin/env python3

"""
Job Watch - Main Entry Point
LinkedIn job watcher: background agent control, one-off runs and login
"""

import argparse
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv

import agent
from agent import load_config_or_report
from agent_manager import AgentConfigError, AgentError, AgentManager
from config_loader import DEFAULT_CONFIG_PATH, load_config
from job_store import JobStore
from log_config import setup_logging
from scrape_cycle import CycleOutcome, ScrapeCycle
from scraper_state import ScraperStateStore, is_process_alive


def display_config(config) -> None:
    """Display loaded configuration"""
    logger = logging.getLogger(__name__)

    print("\n" + "="*60)
    print("🤖 JOB WATCH")
    print("="*60)

    print("\n📋 SEARCH PARAMETERS:")
    keywords = config.get_keywords()
    for i, keyword in enumerate(keywords, 1):
        print(f"  {i}. {keyword}")

    print(f"\n📍 Location: {config.get_location()} (geoId {config.get_geo_id()})")
    print(f"⏱️  Interval: every {config.get_interval_minutes()} min, max age {config.get_max_minutes_ago()} min")

    print(f"\n⚙️  BROWSER SETTINGS:")
    print(f"  Headless mode: {config.is_headless()}")
    nav_min, nav_max = config.get_navigation_delay()
    print(f"  Navigation delay: {nav_min}s - {nav_max}s")

    print(f"\n🤖 AI FILTER:")
    if config.is_ai_enabled():
        print(f"  ✓ Enabled ({config.get_ai_backend()}: {config.get_ai_model()})")
    else:
        print(f"  ✗ Disabled (keyword pre-filter only)")

    print(f"\n💾 Database: {config.get_database_path()}")
    print("\n" + "="*60 + "\n")

    logger.info(f"Config validated: {len(keywords)} search keywords configured")


def print_status(manager: AgentManager) -> None:
    status = manager.status()
    if status.running:
        print(f"🟢 Agent running (PID {status.pid})")
    else:
        print("⚪ Agent not running")
    print(f"   Cycle in progress: {status.is_running_cycle}")
    print(f"   Last run: {status.last_run_at.isoformat(timespec='seconds')}")
    last_success = status.last_success_at.isoformat(timespec="seconds") if status.last_success_at else "never"
    print(f"   Last success: {last_success}")
    print(f"   Consecutive errors: {status.error_count}")


def cmd_agent(args: argparse.Namespace) -> int:
    if args.action == "run":
        return agent.main(["--config", args.config])

    config = load_config_or_report(args.config) if args.action == "start" else _load_quiet(args.config)
    if config is None:
        return 1
    manager = AgentManager(config)

    if args.action == "status":
        print_status(manager)
        return 0

    if args.action == "stop":
        if manager.stop(timeout=args.timeout):
            print("🛑 Agent stopped")
        else:
            print("⚪ Agent was not running")
        return 0

    try:
        pid = manager.start()
    except AgentConfigError as e:
        print("❌ Configuration is incomplete:")
        for error in e.errors:
            print(f"  - {error}")
        return 1
    except AgentError as e:
        print(f"❌ {e}")
        return 1
    print(f"🚀 Agent started (PID {pid}), logging to {manager.log_file}")
    return 0


def cmd_run_once(args: argparse.Namespace) -> int:
    config = load_config_or_report(args.config)
    if config is None:
        return 1
    setup_logging(config)
    display_config(config)

    db_path = config.get_database_path()
    state = ScraperStateStore(db_path)
    owner = state.get().owner_pid
    if owner is not None and is_process_alive(owner):
        print(f"⚠️  Agent is running (PID {owner}); it already scrapes on schedule.")
        return 1

    cycle = ScrapeCycle(config, state, JobStore(db_path))
    outcome = cycle.run()
    print(f"\n✅ Cycle finished: {outcome.value}")
    if cycle.last_metrics is not None:
        print(f"📊 {cycle.last_metrics.summary()}")
    return 1 if outcome is CycleOutcome.FAILED else 0


def cmd_login(args: argparse.Namespace) -> int:
    from setup_session import setup_session

    config = _load_quiet(args.config)
    if config is None:
        return 1
    return 0 if setup_session(config) else 1


def _load_quiet(config_path: str):
    """Load config without requiring it to be complete (status/stop/login)."""
    try:
        return load_config(config_path)
    except FileNotFoundError as e:
        print(f"❌ Error: {e}")
        print("Make sure config/settings.yaml exists!")
    except Exception as e:
        print(f"❌ Error loading config: {e}")
    return None


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="job-watch", description="LinkedIn Job Watch")
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help="Path to config YAML",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    agent_parser = sub.add_parser("agent", help="Control the background agent")
    agent_parser.add_argument("action", choices=["run", "start", "stop", "status"])
    agent_parser.add_argument(
        "--timeout",
        type=float,
        default=15,
        help="Seconds to wait for a graceful stop before SIGKILL",
    )
    agent_parser.set_defaults(func=cmd_agent)

    once_parser = sub.add_parser("run-once", help="Run a single scrape cycle in the foreground")
    once_parser.set_defaults(func=cmd_run_once)

    login_parser = sub.add_parser("login", help="Log in to LinkedIn and save session cookies")
    login_parser.set_defaults(func=cmd_login)

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main execution function"""
    args = parse_args(argv)
    load_dotenv()
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
