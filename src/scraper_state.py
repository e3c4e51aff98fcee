"""
Scraper State - the singleton row shared by the agent and the control surface.

Every reader that finds a recorded owner pid which is no longer alive treats
it as a crash artifact and clears both the owner and the running flag.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

from database import connect
from models import ScraperState

logger = logging.getLogger(__name__)

STATE_ID = "singleton"


def is_process_alive(pid: Optional[int]) -> bool:
    """Zero-signal liveness probe.

    Our own exited children are reaped first; an unreaped zombie still
    answers signal 0.
    """
    if not pid or pid <= 0:
        return False
    try:
        reaped_pid, _ = os.waitpid(pid, os.WNOHANG)
        if reaped_pid == pid:
            return False
    except ChildProcessError:
        pass
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class ScraperStateStore:
    """Reads and updates the durable scraper state row."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def _ensure_row(self, conn) -> None:
        conn.execute(
            "INSERT OR IGNORE INTO scraper_state (id, last_run_at, error_count, is_running) VALUES (?, ?, 0, 0)",
            (STATE_ID, datetime.now().isoformat()),
        )

    def _read(self, conn) -> ScraperState:
        self._ensure_row(conn)
        row = conn.execute(
            "SELECT last_run_at, last_success_at, error_count, is_running, owner_pid FROM scraper_state WHERE id = ?",
            (STATE_ID,),
        ).fetchone()
        return ScraperState(
            last_run_at=_parse_ts(row[0]),
            last_success_at=_parse_ts(row[1]),
            error_count=int(row[2] or 0),
            is_running=bool(row[3]),
            owner_pid=row[4],
        )

    def get(self) -> ScraperState:
        """Current state, created with defaults on first access and repaired if stale."""
        return self.reconcile()

    def reconcile(self) -> ScraperState:
        """Clear owner and running flag when the recorded owner has died."""
        with connect(self.path) as conn:
            state = self._read(conn)
            if state.owner_pid is not None and not is_process_alive(state.owner_pid):
                logger.warning(
                    "Recorded owner pid %s is not alive (is_running=%s) - clearing stale state",
                    state.owner_pid, state.is_running,
                )
                conn.execute(
                    "UPDATE scraper_state SET owner_pid = NULL, is_running = 0 WHERE id = ? AND owner_pid = ?",
                    (STATE_ID, state.owner_pid),
                )
                state = self._read(conn)
        return state

    def try_mark_running(self, now: Optional[datetime] = None) -> bool:
        """Atomically flip is_running 0 -> 1. False when a cycle already holds it."""
        ts = (now or datetime.now()).isoformat()
        with connect(self.path) as conn:
            self._ensure_row(conn)
            cur = conn.execute(
                "UPDATE scraper_state SET is_running = 1, last_run_at = ? WHERE id = ? AND is_running = 0",
                (ts, STATE_ID),
            )
            return cur.rowcount == 1

    def mark_success(self, now: Optional[datetime] = None) -> None:
        ts = (now or datetime.now()).isoformat()
        with connect(self.path) as conn:
            self._ensure_row(conn)
            conn.execute(
                "UPDATE scraper_state SET is_running = 0, last_success_at = ?, error_count = 0 WHERE id = ?",
                (ts, STATE_ID),
            )

    def mark_error(self) -> int:
        """Record a failed cycle and return the new consecutive error count."""
        with connect(self.path) as conn:
            self._ensure_row(conn)
            conn.execute(
                "UPDATE scraper_state SET is_running = 0, error_count = error_count + 1 WHERE id = ?",
                (STATE_ID,),
            )
            (count,) = conn.execute(
                "SELECT error_count FROM scraper_state WHERE id = ?", (STATE_ID,)
            ).fetchone()
        return int(count)

    def reset_on_startup(self, current_pid: Optional[int] = None) -> bool:
        """Clear a running flag and owner left behind by a crashed run.

        Leaves the row untouched (and returns False) when a different owner
        is still alive.
        """
        with connect(self.path) as conn:
            state = self._read(conn)
            owner = state.owner_pid
            if owner is not None and owner != current_pid and is_process_alive(owner):
                logger.info("Owner pid %s is alive - not resetting scraper state", owner)
                return False
            if state.is_running or (owner is not None and owner != current_pid):
                logger.info("Resetting stuck scraper state (is_running=%s, owner_pid=%s)", state.is_running, owner)
            keep_owner = owner if owner == current_pid else None
            conn.execute(
                "UPDATE scraper_state SET is_running = 0, owner_pid = ? WHERE id = ?",
                (keep_owner, STATE_ID),
            )
        return True

    def set_pid(self, pid: int) -> None:
        with connect(self.path) as conn:
            self._ensure_row(conn)
            conn.execute("UPDATE scraper_state SET owner_pid = ? WHERE id = ?", (pid, STATE_ID))

    def clear_pid(self, pid: Optional[int] = None) -> None:
        """Release ownership. With a pid, only that owner's record is cleared."""
        with connect(self.path) as conn:
            self._ensure_row(conn)
            if pid is None:
                conn.execute(
                    "UPDATE scraper_state SET owner_pid = NULL, is_running = 0 WHERE id = ?", (STATE_ID,)
                )
            else:
                conn.execute(
                    "UPDATE scraper_state SET owner_pid = NULL, is_running = 0 WHERE id = ? AND owner_pid = ?",
                    (STATE_ID, pid),
                )
