"""Version-control layer: stage, commit and push through argv-only git calls.

Every git invocation goes through ``SafeCommandExecutor`` (no shell, argv
prefix allowlist). Success and failure are decided by exit status only; git's
human-readable output is never parsed to detect errors. Commit and push are
awaited so callers can sequence them inside an async task without blocking the
loop on network I/O.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from pathlib import Path

from .config import GitConfig
from .errors import GitCommandError, PushError
from .safety.executor import CommandResult, SafeCommandExecutor
from .safety.redaction import redact_text
from .safety.shell import (
    DEFAULT_MAX_COMMIT_MESSAGE_LENGTH,
    sanitize_branch_name,
    sanitize_commit_message,
)
from .safety.telemetry import TelemetrySink
from .workspace import STATE_DIRNAME


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded push retries with capped exponential backoff plus jitter."""

    max_attempts: int = 3
    base_delay_s: float = 1.0
    max_delay_s: float = 30.0
    jitter_ratio: float = 0.1

    @classmethod
    def from_config(cls, git: GitConfig) -> RetryPolicy:
        return cls(
            max_attempts=max(1, git.max_retries),
            base_delay_s=git.base_delay_seconds,
            max_delay_s=git.max_delay_seconds,
        )

    def backoff(self, attempt: int) -> float:
        """Capped delay before retry number ``attempt`` (0-based), without jitter."""
        return min(self.base_delay_s * (2**attempt), self.max_delay_s)

    def delay(self, attempt: int) -> float:
        base = self.backoff(attempt)
        return base + random.uniform(0, self.jitter_ratio * base)


class GitRepo:
    """
    Git operations on one working copy.

    Staging, status and diff are synchronous; commit and push are coroutines
    that run the blocking subprocess in the default executor.
    """

    def __init__(
        self,
        root: Path | str,
        executor: SafeCommandExecutor | None = None,
        *,
        timeout_s: float = 30.0,
        telemetry: TelemetrySink | None = None,
        run_id: str = "git",
        secrets: list[str] | None = None,
    ):
        self.root = Path(root)
        self.executor = executor or SafeCommandExecutor(cwd=self.root, timeout_s=timeout_s)
        self.telemetry = telemetry or TelemetrySink.disabled()
        self.run_id = run_id
        # Literal values (tokens) scrubbed from every error and telemetry string.
        self.secrets = list(secrets or [])

    def _redact(self, text: str) -> str:
        return redact_text(text, secrets=self.secrets)

    def _git(self, *args: str, check: bool = True) -> CommandResult:
        res = self.executor.run(["git", *args])
        self.telemetry.log(
            self.run_id,
            "git_command",
            {
                "argv": [self._redact(a) for a in res.argv],
                "exit_code": res.exit_code,
                "duration_s": res.duration_s,
                "rejected": res.rejected,
            },
        )
        if check and not res.ok:
            detail = res.reject_reason if res.rejected else (res.stderr or res.stdout)
            raise GitCommandError(
                self._redact(f"git {args[0]} failed (exit {res.exit_code}): {detail}"),
                res,
            )
        return res

    # Synchronous operations

    def stage_all(self, exclude: tuple[str, ...] = (STATE_DIRNAME,)) -> None:
        """Stage every change except the patchguard state directory."""
        self._git("add", "-A", "--", ".", *[f":(exclude){p}" for p in exclude])

    def stage(self, paths: list[str]) -> None:
        if not paths:
            return
        self._git("add", "--", *paths)

    def has_staged_changes(self) -> bool:
        """True if the index differs from HEAD (``git diff --cached --quiet`` exit 1)."""
        res = self._git("diff", "--cached", "--quiet", check=False)
        # 0 = no changes, 1 = changes, other = error
        if res.exit_code == 0:
            return False
        if res.exit_code == 1:
            return True
        raise GitCommandError(
            self._redact(f"git diff --cached failed (exit {res.exit_code}): {res.stderr}"),
            res,
        )

    def staged_diff(self) -> str:
        return self._git("diff", "--cached").stdout

    def status_porcelain(self) -> list[str]:
        """Return ``git status --porcelain`` lines (empty list means clean)."""
        res = self._git("status", "--porcelain")
        return [ln for ln in res.stdout.splitlines() if ln.strip()]

    def head_sha(self) -> str:
        return self._git("rev-parse", "HEAD").stdout.strip()

    def current_branch(self) -> str:
        return self._git("rev-parse", "--abbrev-ref", "HEAD").stdout.strip()

    def remote_url(self, remote: str = "origin") -> str | None:
        res = self._git("remote", "get-url", remote, check=False)
        if not res.ok:
            return None
        return res.stdout.strip() or None

    def set_identity(self, name: str, email: str) -> None:
        """Set the repository-local commit identity."""
        self._git("config", "user.name", sanitize_commit_message(name, max_length=100))
        self._git("config", "user.email", sanitize_commit_message(email, max_length=254))

    # Awaited operations

    async def commit(
        self,
        message: str,
        allow_empty: bool = True,
        max_length: int = DEFAULT_MAX_COMMIT_MESSAGE_LENGTH,
    ) -> str:
        """
        Commit the index with a sanitized message.

        Args:
            message: Raw (possibly model-supplied) commit message
            allow_empty: Pass --allow-empty so a no-op task still records a commit
            max_length: Maximum sanitized message length

        Returns:
            SHA of the new HEAD

        Raises:
            GitCommandError: git commit exited non-zero
        """
        safe_message = sanitize_commit_message(message, max_length=max_length)
        args = ["commit"]
        if allow_empty:
            args.append("--allow-empty")
        args.extend(["-m", safe_message])

        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, lambda: self._git(*args))
        sha = await loop.run_in_executor(None, self.head_sha)
        self.telemetry.log(
            self.run_id,
            "commit_created",
            {"sha": sha, "message": safe_message, "allow_empty": allow_empty},
        )
        return sha

    def _push_once(self, target: str, branch: str) -> CommandResult:
        return self._git("push", target, f"HEAD:refs/heads/{branch}", check=False)

    async def push_with_retry(
        self,
        branch: str,
        policy: RetryPolicy | None = None,
        auth_url: str | None = None,
        remote: str = "origin",
    ) -> CommandResult:
        """
        Push HEAD to ``branch`` with bounded retries.

        Attempts ``policy.max_attempts`` pushes to ``remote`` with exponential
        backoff and jitter between them. If all fail and ``auth_url`` is given,
        one final push is made against it before giving up.

        Returns:
            CommandResult of the successful push

        Raises:
            ValueError: branch name is empty after sanitization
            PushError: every attempt failed
        """
        policy = policy or RetryPolicy()
        safe_branch = sanitize_branch_name(branch)
        if not safe_branch:
            raise ValueError(f"Invalid branch name: {branch!r}")

        loop = asyncio.get_event_loop()
        attempts = 0
        last: CommandResult | None = None

        for attempt in range(policy.max_attempts):
            attempts += 1
            last = await loop.run_in_executor(None, self._push_once, remote, safe_branch)
            if last.ok:
                self.telemetry.log(
                    self.run_id,
                    "push_succeeded",
                    {"branch": safe_branch, "attempts": attempts, "fallback": False},
                )
                return last
            self.telemetry.log(
                self.run_id,
                "push_attempt_failed",
                {
                    "branch": safe_branch,
                    "attempt": attempts,
                    "exit_code": last.exit_code,
                    "stderr": self._redact(last.stderr),
                },
            )
            if attempt < policy.max_attempts - 1:
                await asyncio.sleep(policy.delay(attempt))

        if auth_url:
            attempts += 1
            last = await loop.run_in_executor(None, self._push_once, auth_url, safe_branch)
            if last.ok:
                self.telemetry.log(
                    self.run_id,
                    "push_succeeded",
                    {"branch": safe_branch, "attempts": attempts, "fallback": True},
                )
                return last
            self.telemetry.log(
                self.run_id,
                "push_attempt_failed",
                {
                    "branch": safe_branch,
                    "attempt": attempts,
                    "exit_code": last.exit_code,
                    "stderr": self._redact(last.stderr),
                    "fallback": True,
                },
            )

        detail = last.stderr if last is not None else ""
        raise PushError(
            self._redact(f"Push to {safe_branch} failed after {attempts} attempts: {detail}"),
            last,
            attempts=attempts,
        )
