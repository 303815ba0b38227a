"""Core data types for patchguard."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

VALID_COMPLEXITIES = ("low", "medium", "high")


@dataclass(frozen=True)
class EditOperation:
    """One file-scoped search/replace intent extracted from model output."""

    target_path: str  # Sanitized, relative to the workspace root
    search_text: str
    replace_text: str

    def __post_init__(self) -> None:
        if not self.target_path:
            raise ValueError("target_path must not be empty")
        if not self.search_text:
            raise ValueError("search_text must not be empty")

    @property
    def line_delta(self) -> int:
        """Net change in line count if the operation is applied."""
        return self.replace_text.count("\n") - self.search_text.count("\n")


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one EditOperation against current file content."""

    is_valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    security_score: int = 100
    complexity: str = "low"
    syntax_valid: bool = True

    def __post_init__(self) -> None:
        if self.complexity not in VALID_COMPLEXITIES:
            raise ValueError(
                f"Invalid complexity: {self.complexity}. "
                f"Must be one of {VALID_COMPLEXITIES}"
            )
        if not 0 <= self.security_score <= 100:
            raise ValueError(f"security_score out of range: {self.security_score}")

    def verdict(self) -> Verdict:
        """Return the tagged accept/reject verdict for this result."""
        if self.is_valid:
            return Accepted(self)
        reasons = list(self.errors)
        if not reasons:
            reasons.append(f"Security score {self.security_score} below threshold")
        return Rejected(self, tuple(reasons))


@dataclass(frozen=True)
class Accepted:
    """The operation may be applied."""

    result: ValidationResult


@dataclass(frozen=True)
class Rejected:
    """The operation must not be applied."""

    result: ValidationResult
    reasons: tuple[str, ...]

    @property
    def reason(self) -> str:
        return "; ".join(self.reasons)


Verdict = Union[Accepted, Rejected]


@dataclass(frozen=True)
class BackupRecord:
    """Short-lived snapshot enabling rollback of one file mutation."""

    original_path: Path
    backup_path: Path
    timestamp: float = field(default_factory=time.time)
    ttl_seconds: float = 60.0

    @property
    def expires_at(self) -> float:
        return self.timestamp + self.ttl_seconds

    def is_expired(self, now: float | None = None) -> bool:
        return (now if now is not None else time.time()) >= self.expires_at


@dataclass
class ApplyOutcome:
    """Result of applying one EditOperation."""

    target_path: str
    applied: bool
    error: str | None = None
    warnings: list[str] = field(default_factory=list)
    security_score: int | None = None

    @property
    def ok(self) -> bool:
        return self.applied

    def to_dict(self) -> dict[str, object]:
        return {
            "target_path": self.target_path,
            "applied": self.applied,
            "error": self.error,
            "warnings": list(self.warnings),
            "security_score": self.security_score,
        }


@dataclass
class BatchReport:
    """Per-operation outcomes for one model response."""

    outcomes: list[ApplyOutcome] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.outcomes)

    @property
    def applied(self) -> int:
        return sum(1 for o in self.outcomes if o.applied)

    @property
    def rejected(self) -> int:
        return self.attempted - self.applied

    @property
    def changed_paths(self) -> list[str]:
        """Distinct paths that were modified, in first-applied order."""
        seen: list[str] = []
        for o in self.outcomes:
            if o.applied and o.target_path not in seen:
                seen.append(o.target_path)
        return seen

    def summary(self) -> str:
        lines = [
            f"Attempted: {self.attempted}  Applied: {self.applied}  Rejected: {self.rejected}"
        ]
        for o in self.outcomes:
            mark = "applied" if o.applied else f"rejected ({o.error})"
            lines.append(f"  - {o.target_path}: {mark}")
        return "\n".join(lines)


@dataclass
class TaskOutcome:
    """Final outcome of processing one response end to end."""

    report: BatchReport
    commit_sha: str | None = None
    pushed: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        """True when no fatal error occurred; partial success still counts."""
        return self.error is None

    def to_dict(self) -> dict[str, object]:
        return {
            "attempted": self.report.attempted,
            "applied": self.report.applied,
            "rejected": self.report.rejected,
            "commit_sha": self.commit_sha,
            "pushed": self.pushed,
            "error": self.error,
            "outcomes": [o.to_dict() for o in self.report.outcomes],
        }
