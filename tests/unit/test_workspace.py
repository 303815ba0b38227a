"""Unit tests for workspace.py - contained reads and atomic writes."""

import os
import stat

import pytest

from patchguard.errors import UnsafePathError
from patchguard.workspace import STATE_DIRNAME, Workspace


class TestWorkspace:
    """Test path containment and file I/O."""

    def test_missing_root_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            Workspace(tmp_path / "nope")

    def test_state_dirs(self, tmp_path):
        ws = Workspace(tmp_path)
        assert ws.state_dir == tmp_path.resolve() / STATE_DIRNAME
        assert ws.backups_dir == ws.state_dir / "backups"

    def test_resolve_rejects_escape(self, tmp_path):
        ws = Workspace(tmp_path)
        with pytest.raises(UnsafePathError):
            ws.resolve("../outside.txt")

    def test_resolve_rejects_state_dir(self, tmp_path):
        ws = Workspace(tmp_path)
        with pytest.raises(UnsafePathError):
            ws.resolve(f"{STATE_DIRNAME}/backups/x.bak")

    def test_read_preserves_crlf(self, tmp_path):
        (tmp_path / "w.txt").write_bytes(b"a\r\nb\r\n")
        assert Workspace(tmp_path).read_text("w.txt") == "a\r\nb\r\n"

    def test_write_atomic_replaces_content(self, tmp_path):
        (tmp_path / "a.txt").write_text("old")
        ws = Workspace(tmp_path)
        written = ws.write_atomic("a.txt", "new")
        assert written == tmp_path.resolve() / "a.txt"
        assert (tmp_path / "a.txt").read_text() == "new"
        # No temp files left behind
        assert sorted(p.name for p in tmp_path.iterdir()) == ["a.txt"]

    def test_write_atomic_keeps_mode(self, tmp_path):
        script = tmp_path / "run.sh"
        script.write_text("echo hi\n")
        os.chmod(script, 0o755)
        Workspace(tmp_path).write_atomic("run.sh", "echo bye\n")
        assert stat.S_IMODE(script.stat().st_mode) == 0o755

    def test_write_atomic_keeps_crlf(self, tmp_path):
        ws = Workspace(tmp_path)
        (tmp_path / "w.txt").write_bytes(b"x\r\n")
        ws.write_atomic("w.txt", "y\r\n")
        assert (tmp_path / "w.txt").read_bytes() == b"y\r\n"

    def test_relative(self, tmp_path):
        (tmp_path / "src").mkdir()
        ws = Workspace(tmp_path)
        assert ws.relative(tmp_path / "src" / "m.py") == "src/m.py"
