"""
Agent Manager - spawn, stop and monitor the detached agent process.

No IPC: coordination goes through the shared scraper state row, pid
liveness probes and OS signals.
"""

import logging
import os
import signal
import subprocess
import sys
import time
from pathlib import Path
from typing import List, Optional, Sequence

from models import AgentStatus
from scraper_state import ScraperStateStore, is_process_alive

logger = logging.getLogger(__name__)


class AgentError(Exception):
    """Base exception for agent manager errors."""
    pass


class AgentAlreadyRunning(AgentError):
    """Raised when trying to start an agent that's already running."""
    pass


class AgentConfigError(AgentError):
    """Raised when the configuration blocks the agent from starting."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("Invalid configuration: " + "; ".join(self.errors))


class AgentStartError(AgentError):
    """Raised when the spawned agent dies right after launch."""
    pass


def default_agent_command(config_path: Path) -> List[str]:
    return [sys.executable, "-m", "agent", "--config", str(Path(config_path).resolve())]


class AgentManager:
    """
    Process supervisor used by the control surface.

    Example:
        manager = AgentManager(config)
        manager.start()
        print(manager.status().running)
        manager.stop()
    """

    def __init__(
        self,
        config,
        state: Optional[ScraperStateStore] = None,
        command: Optional[Sequence[str]] = None,
        settle_seconds: float = 0.5,
        poll_interval: float = 0.5,
    ):
        self.config = config
        self.state = state or ScraperStateStore(config.get_database_path())
        self.command = list(command) if command else default_agent_command(config.config_path)
        self.log_file = config.get_agent_log_file()
        self.settle_seconds = settle_seconds
        self.poll_interval = poll_interval

    def status(self) -> AgentStatus:
        """Current liveness; a dead recorded pid is cleared on the spot."""
        state = self.state.get()
        pid = state.owner_pid
        running = pid is not None and is_process_alive(pid)
        if pid is not None and not running:
            logger.warning("Agent pid %s is gone - clearing stale ownership", pid)
            self.state.clear_pid(pid)
            pid = None
        return AgentStatus(
            running=running,
            pid=pid,
            last_run_at=state.last_run_at,
            last_success_at=state.last_success_at,
            error_count=state.error_count,
            is_running_cycle=state.is_running if running else False,
        )

    def start(self) -> int:
        """Spawn the agent detached from this process. Returns its pid."""
        current = self.status()
        if current.running:
            raise AgentAlreadyRunning(f"Agent already running with PID {current.pid}")

        errors = self.config.validate()
        if errors:
            raise AgentConfigError(errors)

        self.log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Starting agent: %s", " ".join(self.command))
        with open(self.log_file, "ab") as log:
            # New session: the agent outlives us and gets its own process group.
            process = subprocess.Popen(
                self.command,
                stdin=subprocess.DEVNULL,
                stdout=log,
                stderr=subprocess.STDOUT,
                start_new_session=True,
                env=os.environ.copy(),
            )
        pid = process.pid
        self.state.set_pid(pid)

        time.sleep(self.settle_seconds)
        if process.poll() is not None or not is_process_alive(pid):
            self.state.clear_pid(pid)
            raise AgentStartError(
                f"Agent exited immediately (code {process.returncode}); see {self.log_file}"
            )

        logger.info("Agent started (PID %s, log %s)", pid, self.log_file)
        return pid

    def stop(self, timeout: float = 15) -> bool:
        """
        Stop the agent: SIGTERM, wait up to timeout, then SIGKILL.

        Returns True if a live agent was signalled, False if none was running.
        Ownership is cleared in every case.
        """
        state = self.state.get()
        pid = state.owner_pid
        if pid is None:
            logger.info("No agent is running")
            return False

        try:
            if not is_process_alive(pid):
                logger.info("Agent pid %s already exited", pid)
                return False

            logger.info("Stopping agent (PID %s)...", pid)
            if not self._signal(pid, signal.SIGTERM):
                return True

            deadline = time.monotonic() + timeout
            while time.monotonic() < deadline:
                time.sleep(self.poll_interval)
                if not is_process_alive(pid):
                    logger.info("Agent stopped gracefully")
                    return True

            logger.warning("Agent didn't exit within %ss, sending SIGKILL...", timeout)
            self._signal(pid, signal.SIGKILL)
            for _ in range(10):
                if not is_process_alive(pid):
                    break
                time.sleep(0.1)
            return True
        finally:
            self.state.clear_pid(pid)

    def _signal(self, pid: int, sig: int) -> bool:
        """Signal the process group, falling back to the pid. False if the process is gone."""
        try:
            os.killpg(pid, sig)
            return True
        except (ProcessLookupError, PermissionError):
            pass
        try:
            os.kill(pid, sig)
            return True
        except ProcessLookupError:
            return False
