"""Workspace: the working copy a task is allowed to touch.

Every filesystem call made on behalf of an edit goes through ``resolve()``
first, so paths are contained under the root before anything is read or
written.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from .safety.safe_paths import safe_resolve

STATE_DIRNAME = ".patchguard"


class Workspace:
    """A directory holding one clone, exclusively owned by the current task."""

    def __init__(self, root: Path | str):
        self.root = Path(root).resolve()
        if not self.root.is_dir():
            raise FileNotFoundError(f"Workspace root does not exist: {self.root}")

    def __repr__(self) -> str:
        return f"Workspace({str(self.root)!r})"

    @property
    def state_dir(self) -> Path:
        """Per-workspace scratch area for backups and telemetry."""
        return self.root / STATE_DIRNAME

    @property
    def backups_dir(self) -> Path:
        return self.state_dir / "backups"

    def resolve(self, rel_path: str) -> Path:
        """Resolve a workspace-relative path; raises UnsafePathError on escape."""
        return safe_resolve(self.root, rel_path)

    def read_text(self, rel_path: str) -> str:
        # newline="" keeps CRLF files byte-for-byte on the round trip.
        with open(self.resolve(rel_path), encoding="utf-8", newline="") as f:
            return f.read()

    def write_atomic(self, rel_path: str, content: str) -> Path:
        """
        Replace a file's content via a temp file in the same directory.

        Args:
            rel_path: Workspace-relative target
            content: Full new content

        Returns:
            Resolved path that was written
        """
        target = self.resolve(rel_path)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(content)
            if target.exists():
                os.chmod(tmp_name, target.stat().st_mode & 0o7777)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        return target

    def relative(self, path: Path) -> str:
        return Path(path).resolve().relative_to(self.root).as_posix()
