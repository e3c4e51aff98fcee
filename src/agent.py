#!/usr/bin/env python3

"""
Job Watch Agent - standalone long-running scraper process

Claims ownership of the scraper state, runs the scheduler and shuts down
gracefully on SIGINT/SIGTERM. Normally spawned detached by the agent manager.
"""

import argparse
import logging
import os
import signal
import sys
import threading
import time
from typing import Callable, List, Optional

import yaml
from dotenv import load_dotenv

from config_loader import ConfigValidationError, DEFAULT_CONFIG_PATH, load_config
from job_store import JobStore
from log_config import setup_logging
from scheduler import start_scheduler
from scrape_cycle import ScrapeCycle
from scraper_state import ScraperStateStore, is_process_alive

logger = logging.getLogger(__name__)


def load_config_or_report(config_path: str):
    """Load and validate config; print the problems and return None when unusable."""
    try:
        config = load_config(config_path)
    except FileNotFoundError as e:
        print(f"❌ Error: {e}")
        print("Make sure config/settings.yaml exists!")
        return None
    except (ConfigValidationError, yaml.YAMLError) as e:
        print(f"❌ Error loading config: {e}")
        return None

    errors = config.validate()
    if errors:
        print("❌ Configuration is incomplete:")
        for error in errors:
            print(f"  - {error}")
        return None
    return config


def claim_ownership(state: ScraperStateStore, pid: int) -> bool:
    """Record pid as the agent owner unless another live agent holds it.

    A refusal leaves the state untouched.
    """
    current = state.get()
    owner = current.owner_pid
    if owner is not None and owner != pid and is_process_alive(owner):
        logger.error("Another agent is already running (pid %s). Refusing to start.", owner)
        return False
    state.reset_on_startup(pid)
    state.set_pid(pid)
    logger.info("Agent ownership claimed (pid %s)", pid)
    return True


def wait_for_cycle(state: ScraperStateStore, timeout: float, poll_interval: float = 1.0) -> bool:
    """Poll until no cycle is running. False when the timeout expired first."""
    deadline = time.monotonic() + timeout
    while True:
        if not state.get().is_running:
            return True
        if time.monotonic() >= deadline:
            return False
        logger.info("Waiting for in-flight scrape cycle to finish...")
        time.sleep(min(poll_interval, max(deadline - time.monotonic(), 0)))


def run_agent(config, cycle_factory: Callable = ScrapeCycle) -> int:
    """Run the scheduler until a termination signal arrives. Returns the exit code.

    cycle_factory is called as cycle_factory(config, state, job_store) for each tick.
    """
    pid = os.getpid()
    db_path = config.get_database_path()
    state = ScraperStateStore(db_path)
    job_store = JobStore(db_path)

    if not claim_ownership(state, pid):
        return 1

    stop_event = threading.Event()

    def _handle_signal(signum, frame):
        logger.info("Received %s, shutting down...", signal.Signals(signum).name)
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    try:
        handle = start_scheduler(
            config,
            lambda: cycle_factory(config, state, job_store),
            state,
            current_pid=pid,
        )
    except Exception:
        logger.exception("Agent failed to start")
        state.clear_pid(pid)
        return 1

    logger.info("Agent running (pid %s). Send SIGTERM or press Ctrl+C to stop.", pid)
    while not stop_event.wait(timeout=1.0):
        pass

    handle.stop()
    timeout = config.get_shutdown_timeout_seconds()
    deadline = time.monotonic() + timeout
    # A tick handed to the worker may not have marked itself running yet
    finished = handle.wait_for_idle(timeout) and wait_for_cycle(state, max(deadline - time.monotonic(), 0))
    state.clear_pid(pid)

    if not finished:
        logger.warning("Scrape cycle did not finish within %ss, exiting anyway", timeout)
        logging.shutdown()
        # The worker thread still holds the browser; skip the interpreter's thread join.
        os._exit(0)

    logger.info("Agent stopped")
    return 0


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Job Watch agent")
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help="Path to config YAML",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Agent process entry point"""
    args = parse_args(argv)
    load_dotenv()

    config = load_config_or_report(args.config)
    if config is None:
        return 1

    setup_logging(config)
    try:
        return run_agent(config)
    except Exception:
        logger.exception("Agent crashed")
        ScraperStateStore(config.get_database_path()).clear_pid(os.getpid())
        return 1


if __name__ == "__main__":
    sys.exit(main())
