from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .safety.telemetry import read_events


@dataclass(frozen=True)
class StatusWindow:
    seconds: float


def compute_status(telemetry_path: Path, *, window: StatusWindow | None = None) -> dict[str, Any]:
    """Compute apply/push metrics from telemetry.jsonl (best-effort)."""
    window = window or StatusWindow(seconds=3600.0)
    cutoff = time.time() - float(window.seconds)

    events = read_events(telemetry_path)
    recent = [e for e in events if float(e.get("timestamp", 0.0) or 0.0) >= cutoff]

    def _count(event_type: str) -> int:
        return sum(1 for e in recent if e.get("type") == event_type)

    def _rate(ok_count: int, fail_count: int) -> float | None:
        denom = ok_count + fail_count
        return (ok_count / denom) if denom else None

    tasks = [e for e in recent if e.get("type") == "task_completed"]
    push_ok = _count("push_succeeded")
    # A task whose push failed logs push_attempt_failed once per attempt, so
    # failures are counted per task instead.
    push_fail = sum(
        1
        for e in tasks
        if (e.get("data") or {}).get("commit_sha") and not (e.get("data") or {}).get("pushed")
    )

    last_task = next((e for e in reversed(events) if e.get("type") == "task_completed"), None)

    return {
        "window_seconds": window.seconds,
        "telemetry_path": str(telemetry_path),
        "tasks": len(tasks),
        "operations_extracted": _count("operation_extracted"),
        "operations_dropped": _count("operation_dropped"),
        "validation_rejections": _count("validation_rejected"),
        "apply_success_rate": _rate(_count("apply_succeeded"), _count("apply_failed") + _count("validation_rejected")),
        "push_success_rate": _rate(push_ok, push_fail),
        "push_attempts_failed": _count("push_attempt_failed"),
        "backups_restored": _count("backup_restored"),
        "last_task": last_task,
    }
