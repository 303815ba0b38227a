"""Unit tests for status/metrics derived from telemetry."""

from __future__ import annotations

import json
import time
from pathlib import Path

from patchguard.status import StatusWindow, compute_status


def _write_events(path: Path, events: list[dict]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        for e in events:
            f.write(json.dumps(e) + "\n")


def test_compute_status_basic(tmp_path: Path) -> None:
    telemetry = tmp_path / "telemetry.jsonl"
    now = time.time()

    events = [
        {"timestamp": now - 10, "run_id": "a", "type": "operation_extracted", "data": {"count": 2}},
        {"timestamp": now - 9, "run_id": "a", "type": "apply_succeeded", "data": {}},
        {"timestamp": now - 8, "run_id": "a", "type": "validation_rejected", "data": {}},
        {"timestamp": now - 7, "run_id": "a", "type": "push_succeeded", "data": {}},
        {"timestamp": now - 6, "run_id": "a", "type": "task_completed", "data": {"commit_sha": "abc", "pushed": True}},
    ]
    _write_events(telemetry, events)

    st = compute_status(telemetry, window=StatusWindow(seconds=60))
    assert st["telemetry_path"] == str(telemetry)
    assert st["tasks"] == 1
    assert st["operations_extracted"] == 1
    assert st["validation_rejections"] == 1
    assert st["apply_success_rate"] == 0.5
    assert st["push_success_rate"] == 1.0
    assert st["last_task"]["run_id"] == "a"


def test_failed_push_counted_once_per_task(tmp_path: Path) -> None:
    telemetry = tmp_path / "telemetry.jsonl"
    now = time.time()
    events = [
        {"timestamp": now - 5, "run_id": "b", "type": "push_attempt_failed", "data": {"attempt": 1}},
        {"timestamp": now - 4, "run_id": "b", "type": "push_attempt_failed", "data": {"attempt": 2}},
        {"timestamp": now - 3, "run_id": "b", "type": "task_completed", "data": {"commit_sha": "abc", "pushed": False}},
        {"timestamp": now - 2, "run_id": "c", "type": "push_succeeded", "data": {}},
        {"timestamp": now - 1, "run_id": "c", "type": "task_completed", "data": {"commit_sha": "def", "pushed": True}},
    ]
    _write_events(telemetry, events)

    st = compute_status(telemetry)
    assert st["push_attempts_failed"] == 2
    assert st["push_success_rate"] == 0.5
    assert st["last_task"]["run_id"] == "c"


def test_window_excludes_old_events(tmp_path: Path) -> None:
    telemetry = tmp_path / "telemetry.jsonl"
    now = time.time()
    _write_events(
        telemetry,
        [
            {"timestamp": now - 7200, "run_id": "old", "type": "apply_succeeded", "data": {}},
            {"timestamp": now - 7100, "run_id": "old", "type": "task_completed", "data": {}},
        ],
    )

    st = compute_status(telemetry, window=StatusWindow(seconds=60))
    assert st["tasks"] == 0
    assert st["apply_success_rate"] is None
    # The last task is reported regardless of the window.
    assert st["last_task"]["run_id"] == "old"


def test_missing_file(tmp_path: Path) -> None:
    st = compute_status(tmp_path / "missing.jsonl")
    assert st["tasks"] == 0
    assert st["push_success_rate"] is None
    assert st["last_task"] is None
