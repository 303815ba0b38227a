"""Dangerous-pattern table used by the validator.

Each entry is (compiled regex, severity 0-100, description). Severity maps to
a tier: CRITICAL >= 80, HIGH >= 60, MEDIUM otherwise. Order matters only for
the order errors are reported in.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from .config import CustomPatternConfig

CRITICAL_THRESHOLD = 80
HIGH_THRESHOLD = 60


@dataclass(frozen=True)
class DangerousPattern:
    regex: re.Pattern[str]
    severity: int
    description: str

    @property
    def tier(self) -> str:
        return severity_tier(self.severity)

    def matches(self, text: str) -> bool:
        return bool(text) and self.regex.search(text) is not None


def severity_tier(severity: int) -> str:
    if severity >= CRITICAL_THRESHOLD:
        return "CRITICAL"
    if severity >= HIGH_THRESHOLD:
        return "HIGH"
    return "MEDIUM"


def _p(pattern: str, severity: int, description: str, flags: int = re.IGNORECASE) -> DangerousPattern:
    return DangerousPattern(re.compile(pattern, flags), severity, description)


DANGEROUS_PATTERNS: tuple[DangerousPattern, ...] = (
    # Destructive shell idioms
    _p(r"\brm\s+-(?:[a-z]*r[a-z]*f|[a-z]*f[a-z]*r)[a-z]*\b", 95, "Recursive file deletion (rm -rf)"),
    _p(r"\bmkfs(?:\.\w+)?\b", 95, "Filesystem formatting (mkfs)"),
    _p(r"\bdd\s+if=", 90, "Raw disk write (dd)"),
    _p(r":\(\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:", 95, "Fork bomb"),
    _p(r">\s*/dev/sd[a-z]\b", 90, "Direct block device write"),
    _p(r"\bchmod\s+(?:-R\s+)?0?777\b", 70, "World-writable permissions (chmod 777)"),
    _p(r"\b(?:curl|wget)\b[^\n|]*\|\s*(?:ba|z)?sh\b", 90, "Remote script piped to shell"),
    _p(r"\bsudo\s+", 70, "Privilege escalation (sudo)"),
    # Code evaluation and execution
    _p(r"(?<![\w.])eval\s*\(", 85, "Code evaluation (eval)"),
    _p(r"\bnew\s+Function\s*\(", 85, "Code evaluation (Function constructor)"),
    _p(r"\bchild_process\b", 85, "Code execution (child_process)"),
    _p(r"(?<![\w.])exec\s*\(", 80, "Code execution (exec)"),
    _p(r"\bos\.system\s*\(", 85, "Code execution (os.system)"),
    _p(r"\bsubprocess\.\w+\([^)]*shell\s*=\s*True", 80, "Code execution (subprocess with shell=True)"),
    _p(r"(?<![\w.])system\s*\(", 75, "Code execution (system)"),
    _p(r"\bshell_exec\b", 80, "Code execution (shell_exec)"),
    _p(r"\bprocess\.exit\s*\(", 50, "Process termination (process.exit)"),
    # Path traversal
    _p(r"(?:\.\./){2,}|(?:\.\.\\){2,}", 70, "Path traversal"),
    _p(r"/etc/(?:passwd|shadow|sudoers)\b", 85, "System credential file access"),
    # Prototype / constructor tampering
    _p(r"__proto__", 75, "Prototype pollution (__proto__)"),
    _p(r"\bconstructor\s*(?:\.|\[\s*['\"])\s*prototype\b", 75, "Constructor prototype tampering"),
    _p(r"\bObject\.setPrototypeOf\s*\(", 60, "Prototype tampering (setPrototypeOf)"),
    # Credential and storage access
    _p(r"\bdocument\.cookie\b", 70, "Cookie access (document.cookie)"),
    _p(r"\blocalStorage\b", 45, "Browser storage access (localStorage)"),
    _p(r"\bsessionStorage\b", 45, "Browser storage access (sessionStorage)"),
    _p(r"-----BEGIN [A-Z ]*PRIVATE KEY-----", 90, "Embedded private key", 0),
    _p(r"\bAKIA[0-9A-Z]{16}\b", 90, "Embedded AWS access key", 0),
    _p(r"\bgh[pousr]_[A-Za-z0-9]{20,}\b", 90, "Embedded GitHub token", 0),
    _p(r"\bprocess\.env\b", 40, "Environment variable access (process.env)"),
)


def compile_custom_patterns(custom: Iterable[CustomPatternConfig]) -> tuple[DangerousPattern, ...]:
    """Compile operator-supplied patterns from configuration."""
    out: list[DangerousPattern] = []
    for c in custom:
        flags = re.IGNORECASE if c.ignore_case else 0
        out.append(DangerousPattern(re.compile(c.pattern, flags), c.severity, c.description))
    return tuple(out)


def pattern_table(custom: Iterable[CustomPatternConfig] = ()) -> tuple[DangerousPattern, ...]:
    """Built-in patterns followed by custom ones."""
    return DANGEROUS_PATTERNS + compile_custom_patterns(custom)


def find_matches(
    texts: Iterable[str],
    table: Iterable[DangerousPattern] = DANGEROUS_PATTERNS,
) -> list[DangerousPattern]:
    """Return every pattern that matches at least one of ``texts``, in table order."""
    texts = list(texts)
    return [p for p in table if any(p.matches(t) for t in texts)]
