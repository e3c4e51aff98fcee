import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _make_cycle_id() -> str:
    return datetime.now().strftime("%Y%m%d_%H%M%S")


@dataclass
class RunMetrics:
    """
    Per-cycle funnel counters.

    Counters follow the pipeline: scanned -> after_time_filter ->
    after_ai_filter -> new -> saved, plus keywords_failed and save_failed.
    """

    cycle_id: str = field(default_factory=_make_cycle_id)
    started_at_iso: str = field(default_factory=_utc_now_iso)
    started_at_monotonic: float = field(default_factory=time.monotonic)
    ended_at_iso: Optional[str] = None
    duration_seconds: Optional[float] = None
    counters: Dict[str, int] = field(default_factory=dict)
    events: list[dict[str, Any]] = field(default_factory=list)

    def inc(self, key: str, amount: int = 1) -> None:
        if not key:
            return
        self.counters[key] = int(self.counters.get(key, 0)) + int(amount)

    def get(self, key: str) -> int:
        return int(self.counters.get(key, 0))

    def record_event(self, kind: str, **data: Any) -> None:
        if not kind:
            return
        payload: dict[str, Any] = {"t": _utc_now_iso(), "kind": kind}
        payload.update({k: v for k, v in data.items() if v is not None})
        self.events.append(payload)

    def finish(self) -> None:
        """Mark the cycle as finished and record end time."""
        if self.ended_at_iso is None:
            self.ended_at_iso = _utc_now_iso()
            self.duration_seconds = max(time.monotonic() - self.started_at_monotonic, 0.0)

    def to_dict(self) -> Dict[str, Any]:
        duration = self.duration_seconds
        if duration is None:
            duration = max(time.monotonic() - self.started_at_monotonic, 0.0)
        payload: Dict[str, Any] = {
            "cycle_id": self.cycle_id,
            "started_at": self.started_at_iso,
            "ended_at": self.ended_at_iso or _utc_now_iso(),
            "duration_seconds": round(duration, 3),
            "counters": dict(self.counters),
        }
        if self.events:
            payload["events"] = list(self.events)
        return payload

    def summary(self) -> str:
        keys = ("scanned", "after_time_filter", "after_ai_filter", "new", "saved", "save_failed", "keywords_failed")
        return ", ".join(f"{k}={self.get(k)}" for k in keys)
