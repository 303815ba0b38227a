"""Global pytest configuration and shared git fixtures."""

from __future__ import annotations

import os
import subprocess
from pathlib import Path

import pytest


def pytest_sessionstart(session):  # noqa: ARG001
    # Never block on a credential prompt.
    os.environ["GIT_TERMINAL_PROMPT"] = "0"


@pytest.fixture(autouse=True)
def _clean_patchguard_env(monkeypatch):
    """Keep PATCHGUARD_* variables from the outer environment out of tests."""
    for key in list(os.environ):
        if key.startswith("PATCHGUARD_"):
            monkeypatch.delenv(key, raising=False)


def git(repo: Path, *args: str) -> subprocess.CompletedProcess[str]:
    return subprocess.run(["git", *args], cwd=repo, check=True, capture_output=True, text=True)


@pytest.fixture
def git_repo(tmp_path):
    """Create a temporary git repository on branch main with one commit."""
    repo_path = tmp_path / "test_repo"
    repo_path.mkdir()

    git(repo_path, "init", "-b", "main")
    git(repo_path, "config", "user.email", "test@example.com")
    git(repo_path, "config", "user.name", "Test User")

    (repo_path / "main.py").write_text("def hello():\n    print('Hello')\n")
    (repo_path / "a.md").write_text("foo baz")
    (repo_path / "app.js").write_text("function add(a, b) {\n  return a + b;\n}\n")

    git(repo_path, "add", ".")
    git(repo_path, "commit", "-m", "Initial commit")
    return repo_path


@pytest.fixture
def remote_repo(tmp_path, git_repo):
    """Bare repository registered as ``origin`` of ``git_repo``."""
    bare = tmp_path / "remote.git"
    subprocess.run(["git", "init", "--bare", "-b", "main", str(bare)], check=True, capture_output=True)
    git(git_repo, "remote", "add", "origin", str(bare))
    git(git_repo, "push", "origin", "main")
    return bare


@pytest.fixture
def run_git():
    """The ``git(repo, *args)`` helper, for tests that inspect repository state."""
    return git
