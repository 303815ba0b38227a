"""Exception types raised by patchguard.

Validation rejections are never raised; they are reported through
``ApplyOutcome``. Exceptions are reserved for unsafe paths and for
version-control failures that end the task.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .safety.executor import CommandResult


class PatchGuardError(Exception):
    """Base class for all patchguard errors."""


class UnsafePathError(PatchGuardError, ValueError):
    """Raised when a path would resolve outside the workspace root."""


class IntegrityError(PatchGuardError):
    """Raised when a written file fails the post-write integrity check."""


class GitCommandError(PatchGuardError, RuntimeError):
    """Raised when a git subcommand exits non-zero."""

    def __init__(self, message: str, result: CommandResult | None = None) -> None:
        super().__init__(message)
        self.result = result


class PushError(GitCommandError):
    """Raised when a push fails after the retry budget is exhausted."""

    def __init__(
        self,
        message: str,
        result: CommandResult | None = None,
        attempts: int = 0,
    ) -> None:
        super().__init__(message, result)
        self.attempts = attempts
