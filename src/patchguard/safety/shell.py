"""Sanitizers for text that ends up as a subprocess argument.

Commands are always executed as argv lists, so these sanitizers are a second
line of defense: they keep model-derived text from carrying shell syntax into
commit messages, identities or branch names even if a caller later logs or
re-uses the value.
"""

from __future__ import annotations

import re

DEFAULT_COMMIT_MESSAGE = "AI-generated changes"
DEFAULT_MAX_COMMIT_MESSAGE_LENGTH = 72

_SHELL_METACHARS = re.compile(r"[`$;&|<>]")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_QUOTES = re.compile(r"[\"']")
_WHITESPACE = re.compile(r"\s+")
_BRANCH_ILLEGAL = re.compile(r"[^A-Za-z0-9._/-]")


def sanitize_for_shell(value: str) -> str:
    """Strip NUL bytes, newlines, command separators and substitutions."""
    if not value or not isinstance(value, str):
        return ""
    out = value.replace("\x00", "")
    out = re.sub(r"[\r\n]", " ", out)
    out = _SHELL_METACHARS.sub("", out)
    return out.strip()


def sanitize_commit_message(
    message: str,
    max_length: int = DEFAULT_MAX_COMMIT_MESSAGE_LENGTH,
) -> str:
    """
    Make a model-supplied commit message safe to hand to git.

    Args:
        message: Raw commit message
        max_length: Maximum length of the result (truncated with "...")

    Returns:
        Sanitized single-line message, or DEFAULT_COMMIT_MESSAGE if nothing
        usable remains
    """
    if not message or not isinstance(message, str):
        return DEFAULT_COMMIT_MESSAGE

    # Newlines become spaces before control characters are dropped.
    out = _WHITESPACE.sub(" ", message)
    out = _SHELL_METACHARS.sub("", out)
    out = _CONTROL_CHARS.sub("", out)
    out = _QUOTES.sub("", out)
    out = _WHITESPACE.sub(" ", out).strip()

    if len(out) > max_length:
        out = out[: max(max_length - 3, 0)].rstrip() + "..."
        out = out[:max_length]

    if not out.strip(". "):
        return DEFAULT_COMMIT_MESSAGE
    return out


def sanitize_branch_name(name: str) -> str:
    """Reduce a branch name to characters git accepts without quoting."""
    if not name or not isinstance(name, str):
        return ""
    out = _BRANCH_ILLEGAL.sub("-", name.strip())
    out = re.sub(r"\.{2,}", ".", out)
    out = re.sub(r"/{2,}", "/", out)
    out = out.strip("/.-")
    if out.endswith(".lock"):
        out = out[: -len(".lock")]
    return out
