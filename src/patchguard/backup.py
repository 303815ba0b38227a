"""Short-lived file backups and their scheduled cleanup.

A backup is a full copy of the file taken immediately before a mutation. It
is restored when the write or the post-write integrity check fails, and
deleted after its TTL once the mutation has stuck. Cleanup timers are owned by
a ``CleanupScheduler`` so callers can cancel or flush them explicitly instead
of leaving detached callbacks behind.
"""

from __future__ import annotations

import re
import shutil
import threading
import time
from pathlib import Path

from .safety.telemetry import TelemetrySink
from .types import BackupRecord
from .workspace import Workspace


class CleanupScheduler:
    """
    Owns the TTL timers that delete backups.

    Timers are daemon threads so a pending cleanup never keeps the process
    alive. Failures while deleting are ignored: a stray backup is harmless.
    """

    def __init__(self) -> None:
        self._timers: dict[Path, threading.Timer] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._timers)

    @property
    def pending(self) -> list[Path]:
        with self._lock:
            return list(self._timers)

    def schedule(self, record: BackupRecord) -> None:
        delay = max(0.0, record.expires_at - time.time())
        timer = threading.Timer(delay, self._fire, args=(record.backup_path,))
        timer.daemon = True
        with self._lock:
            previous = self._timers.pop(record.backup_path, None)
            self._timers[record.backup_path] = timer
        if previous is not None:
            previous.cancel()
        timer.start()

    def _fire(self, backup_path: Path) -> None:
        with self._lock:
            self._timers.pop(backup_path, None)
        _delete_quietly(backup_path)

    def cancel(self, backup_path: Path) -> bool:
        """Cancel one pending cleanup; the backup file is left in place."""
        with self._lock:
            timer = self._timers.pop(backup_path, None)
        if timer is None:
            return False
        timer.cancel()
        return True

    def cancel_all(self) -> int:
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for t in timers:
            t.cancel()
        return len(timers)

    def flush(self) -> int:
        """Cancel every pending timer and delete its backup now."""
        with self._lock:
            items = list(self._timers.items())
            self._timers.clear()
        for path, timer in items:
            timer.cancel()
            _delete_quietly(path)
        return len(items)


# copy2 preserves the original's mtime, so age comes from the name.
_STAMP_RE = re.compile(r"\.(\d+)\.bak(?:\.\d+)?$")


def backup_timestamp(path: Path) -> float | None:
    """Creation time encoded in a backup file name, in seconds."""
    m = _STAMP_RE.search(path.name)
    return int(m.group(1)) / 1000 if m else None


def _delete_quietly(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError:
        return


class BackupManager:
    """Creates, restores and expires backups under ``<root>/.patchguard/backups``."""

    def __init__(
        self,
        workspace: Workspace,
        ttl_seconds: float = 60.0,
        max_backups_per_file: int = 5,
        scheduler: CleanupScheduler | None = None,
        telemetry: TelemetrySink | None = None,
        run_id: str = "apply",
    ):
        self.workspace = workspace
        self.ttl_seconds = ttl_seconds
        self.max_backups_per_file = max_backups_per_file
        self.scheduler = scheduler or CleanupScheduler()
        self.telemetry = telemetry or TelemetrySink.disabled()
        self.run_id = run_id

    @property
    def directory(self) -> Path:
        return self.workspace.backups_dir

    def _backup_name(self, original: Path, timestamp: float) -> str:
        rel = self.workspace.relative(original).replace("/", "__")
        return f"{rel}.{int(timestamp * 1000)}.bak"

    def create(self, original: Path) -> BackupRecord:
        """Copy ``original`` into the backup directory (raises OSError on failure)."""
        self.directory.mkdir(parents=True, exist_ok=True)
        now = time.time()
        backup_path = self.directory / self._backup_name(original, now)
        # Same millisecond, same file: keep names unique.
        n = 1
        while backup_path.exists():
            backup_path = self.directory / f"{self._backup_name(original, now)}.{n}"
            n += 1
        shutil.copy2(original, backup_path)
        record = BackupRecord(
            original_path=original,
            backup_path=backup_path,
            timestamp=now,
            ttl_seconds=self.ttl_seconds,
        )
        self.telemetry.log(
            self.run_id,
            "backup_created",
            {"path": self.workspace.relative(original), "backup": backup_path.name},
        )
        self._enforce_limit(original)
        return record

    def restore(self, record: BackupRecord) -> None:
        """Copy the backup over the original and drop the backup."""
        shutil.copy2(record.backup_path, record.original_path)
        self.telemetry.log(
            self.run_id,
            "backup_restored",
            {"path": self.workspace.relative(record.original_path), "backup": record.backup_path.name},
        )
        self.delete(record)

    def delete(self, record: BackupRecord) -> None:
        self.scheduler.cancel(record.backup_path)
        _delete_quietly(record.backup_path)

    def schedule_cleanup(self, record: BackupRecord) -> None:
        self.scheduler.schedule(record)

    def backups_for(self, original: Path) -> list[Path]:
        """Existing backups of ``original``, oldest first."""
        if not self.directory.exists():
            return []
        prefix = self.workspace.relative(original).replace("/", "__")
        name_re = re.compile(re.escape(prefix) + r"\.\d+\.bak(?:\.\d+)?")
        found = [p for p in self.directory.iterdir() if name_re.fullmatch(p.name)]
        return sorted(found, key=lambda p: (backup_timestamp(p) or 0.0, p.name))

    def _enforce_limit(self, original: Path) -> None:
        existing = self.backups_for(original)
        excess = len(existing) - self.max_backups_per_file
        for path in existing[: max(excess, 0)]:
            self.scheduler.cancel(path)
            _delete_quietly(path)

    def purge_expired(self, now: float | None = None) -> int:
        """Delete backups older than the TTL (left over from crashed runs)."""
        if not self.directory.exists():
            return 0
        cutoff = (now if now is not None else time.time()) - self.ttl_seconds
        removed = 0
        for path in self.directory.iterdir():
            try:
                created = backup_timestamp(path)
                if created is None:
                    created = path.stat().st_mtime
                if path.is_file() and created < cutoff:
                    self.scheduler.cancel(path)
                    path.unlink()
                    removed += 1
            except OSError:
                continue
        return removed
