"""Secret scrubbing for anything that leaves the process as text.

Git stderr, push errors and validation reasons can echo remote URLs, tokens
or model-supplied payloads. Everything written to telemetry or returned as an
error string passes through ``redact_text`` first.
"""

from __future__ import annotations

import re

REDACTED = "REDACTED"
TRUNCATION_MARKER = "...(truncated)"

_SECRET_SHAPES: tuple[tuple[re.Pattern[str], str], ...] = (
    # userinfo in a remote URL, e.g. https://x-access-token:<token>@github.com/o/r.git
    (re.compile(r"(https?://)[^/\s:@]+:[^/\s@]+@"), rf"\1{REDACTED}@"),
    # Authorization / token headers echoed by verbose git or curl output
    (re.compile(r"(?i)(authorization:\s*(?:bearer|token|basic)\s+)\S+"), rf"\1{REDACTED}"),
    # GitHub personal, OAuth, user, server and refresh tokens
    (re.compile(r"\bgh[pousr]_[A-Za-z0-9]{20,}\b"), "gh_REDACTED"),
    (re.compile(r"\bgithub_pat_[A-Za-z0-9_]{20,}\b"), "github_pat_REDACTED"),
    (re.compile(r"\bAKIA[0-9A-Z]{16}\b"), "AKIA_REDACTED"),
    (re.compile(r"\bsk-[A-Za-z0-9]{16,}\b"), "sk-REDACTED"),
    (
        re.compile(r"-----BEGIN [A-Z ]*PRIVATE KEY-----.*?-----END [A-Z ]*PRIVATE KEY-----", re.S),
        "PRIVATE_KEY_REDACTED",
    ),
)


def redact_text(s: str, *, max_len: int = 400, secrets: list[str] | None = None) -> str:
    """
    Scrub secrets from ``s`` and cap its length.

    Args:
        s: Text to scrub (git output, error message, telemetry field)
        max_len: Longest result kept before truncation
        secrets: Literal values known to be secret for this run, such as the
            installation token used for the push fallback

    Returns:
        Redacted, stripped text; "" for empty input
    """
    if not s:
        return ""
    out = s
    # Literal secrets first so a token is gone even when its shape is unknown.
    for secret in sorted((x for x in secrets or [] if x), key=len, reverse=True):
        out = out.replace(secret, REDACTED)
    for pattern, replacement in _SECRET_SHAPES:
        out = pattern.sub(replacement, out)
    out = out.strip()
    if len(out) > max_len:
        out = out[:max_len] + TRUNCATION_MARKER
    return out
