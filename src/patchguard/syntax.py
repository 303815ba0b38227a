"""Extension-specific syntax heuristics.

Checks compare the file before and after an edit. Only regressions count: a
file that was already unbalanced or unparseable before the edit produces a
warning, never an error, so pre-existing breakage cannot block a fix.
"""

from __future__ import annotations

import ast
import json
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import PurePosixPath

import yaml

# Extension -> (line comment markers, block comment pairs, quote chars)
_C_LIKE = (("//",), (("/*", "*/"),), ("'", '"', "`"))
_HASH = (("#",), (), ("'", '"'))
_LEXERS: dict[str, tuple[tuple[str, ...], tuple[tuple[str, str], ...], tuple[str, ...]]] = {
    **{
        ext: _C_LIKE
        for ext in (
            ".js", ".jsx", ".mjs", ".cjs", ".ts", ".tsx", ".java", ".c", ".h",
            ".cpp", ".cc", ".hpp", ".cs", ".go", ".php", ".swift", ".kt", ".scala",
        )
    },
    # Rust lifetimes ('a) make single quotes unreliable.
    ".rs": (("//",), (("/*", "*/"),), ('"',)),
    ".py": _HASH,
    ".rb": _HASH,
}
STRUCTURED_EXTS = {".json", ".yml", ".yaml", ".toml"}
MARKUP_EXTS = {".html", ".htm", ".xml", ".vue", ".svg"}
STYLE_EXTS = {".css", ".scss", ".less"}

_PAIRS = {")": "(", "]": "[", "}": "{"}
_VOID_TAGS = {
    "area", "base", "br", "col", "embed", "hr", "img", "input", "link",
    "meta", "param", "source", "track", "wbr",
}
_TAG_RE = re.compile(r"<(/?)([A-Za-z][\w:.-]*)([^<>]*?)(/?)>")
_MARKUP_SKIP_RE = re.compile(r"<!--.*?-->|<!\[CDATA\[.*?\]\]>|<![^>]*>|<\?.*?\?>", re.S)


@dataclass
class SyntaxReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors and not self.warnings


def file_kind(path: str) -> str:
    """Classify a path as code, structured, markup, style or text."""
    ext = PurePosixPath(path).suffix.lower()
    if ext in _LEXERS:
        return "code"
    if ext in STRUCTURED_EXTS:
        return "structured"
    if ext in MARKUP_EXTS:
        return "markup"
    if ext in STYLE_EXTS:
        return "style"
    return "text"


def delimiter_balance(text: str, ext: str = ".js") -> str | None:
    """
    Check bracket and quote balance, skipping strings and comments.

    Returns:
        None when balanced, otherwise a short description of the first problem
    """
    line_comments, block_comments, quotes = _LEXERS.get(ext, _C_LIKE)
    triple = ext == ".py"
    stack: list[str] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]

        if any(text.startswith(m, i) for m in line_comments):
            nl = text.find("\n", i)
            i = n if nl == -1 else nl + 1
            continue

        block = next((b for b in block_comments if text.startswith(b[0], i)), None)
        if block is not None:
            end = text.find(block[1], i + len(block[0]))
            if end == -1:
                return "unterminated block comment"
            i = end + len(block[1])
            continue

        if ch in quotes:
            delim = ch * 3 if triple and text.startswith(ch * 3, i) else ch
            j = i + len(delim)
            while j < n:
                if text[j] == "\\":
                    j += 2
                    continue
                if text.startswith(delim, j):
                    break
                # Single-line strings cannot span a newline (template literals can).
                if len(delim) == 1 and delim != "`" and text[j] == "\n":
                    return f"unterminated string at offset {i}"
                j += 1
            else:
                return f"unterminated string at offset {i}"
            i = j + len(delim)
            continue

        if ch in "([{":
            stack.append(ch)
        elif ch in ")]}":
            if not stack or stack[-1] != _PAIRS[ch]:
                return f"unexpected '{ch}' at offset {i}"
            stack.pop()
        i += 1

    if stack:
        return f"unclosed '{stack[-1]}'"
    return None


def brace_balance(text: str) -> str | None:
    """Brace balance for stylesheets (comments and strings skipped)."""
    stripped = re.sub(r"/\*.*?\*/", "", text, flags=re.S)
    stripped = re.sub(r"\"(?:\\.|[^\"\\\n])*\"|'(?:\\.|[^'\\\n])*'", "", stripped)
    depth = 0
    for i, ch in enumerate(stripped):
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth < 0:
                return f"unexpected '}}' at offset {i}"
    if depth:
        return f"{depth} unclosed '{{'"
    return None


def tag_balance(text: str) -> str | None:
    """Heuristic open/close tag matching for HTML-like markup."""
    body = _MARKUP_SKIP_RE.sub("", text)
    # Script/style bodies are not markup.
    body = re.sub(r"(<(script|style)\b[^>]*>).*?(</\2\s*>)", r"\1\3", body, flags=re.S | re.I)
    stack: list[str] = []
    for m in _TAG_RE.finditer(body):
        closing, name, _attrs, self_closing = m.groups()
        name_l = name.lower()
        if self_closing or name_l in _VOID_TAGS:
            continue
        if not closing:
            stack.append(name_l)
            continue
        if not stack:
            return f"unexpected </{name}>"
        if stack[-1] != name_l:
            if name_l in stack:
                return f"<{stack[-1]}> not closed before </{name}>"
            return f"unexpected </{name}>"
        stack.pop()
    if stack:
        return f"unclosed <{stack[-1]}>"
    return None


def structured_parse(text: str, ext: str) -> str | None:
    """Attempt a real parse of JSON/YAML/TOML (and Python source)."""
    try:
        if ext == ".json":
            json.loads(text)
        elif ext in (".yml", ".yaml"):
            list(yaml.safe_load_all(text))
        elif ext == ".toml":
            tomllib.loads(text)
        elif ext == ".py":
            ast.parse(text)
    except (ValueError, yaml.YAMLError, SyntaxError) as e:
        return f"{type(e).__name__}: {str(e).splitlines()[0] if str(e) else 'parse failed'}"
    return None


def _balance_check(path: str, text: str) -> str | None:
    ext = PurePosixPath(path).suffix.lower()
    kind = file_kind(path)
    if kind == "code":
        return delimiter_balance(text, ext)
    if kind == "markup":
        return tag_balance(text)
    if kind == "style":
        return brace_balance(text)
    return None


def _parse_check(path: str, text: str) -> str | None:
    ext = PurePosixPath(path).suffix.lower()
    if ext in STRUCTURED_EXTS or ext == ".py":
        return structured_parse(text, ext)
    return None


def check_syntax(path: str, original: str, updated: str) -> SyntaxReport:
    """
    Compare syntax health of a file before and after an edit.

    Args:
        path: Workspace-relative path (extension selects the checks)
        original: Content before the edit
        updated: Content after the edit

    Returns:
        SyntaxReport; parse regressions are errors, balance regressions warnings
    """
    report = SyntaxReport()

    new_parse = _parse_check(path, updated)
    if new_parse is not None:
        if _parse_check(path, original) is None:
            report.errors.append(f"Syntax error introduced in {path}: {new_parse}")
        else:
            report.warnings.append(f"{path} did not parse before the edit either: {new_parse}")

    new_balance = _balance_check(path, updated)
    if new_balance is not None:
        if _balance_check(path, original) is None:
            report.warnings.append(f"Unbalanced delimiters introduced in {path}: {new_balance}")
        else:
            report.warnings.append(f"{path} was already unbalanced: {new_balance}")

    return report


def delimiter_counts(text: str) -> dict[str, int]:
    """Raw open-minus-close counts per bracket pair."""
    return {
        "()": text.count("(") - text.count(")"),
        "[]": text.count("[") - text.count("]"),
        "{}": text.count("{") - text.count("}"),
    }


def check_integrity(path: str, original: str, updated: str) -> list[str]:
    """
    Post-write integrity check for a file's new content.

    Returns:
        List of problems; empty means the content may stay on disk
    """
    problems: list[str] = []
    if "\x00" in updated and "\x00" not in original:
        problems.append("NUL byte introduced")
    if updated.count("\ufffd") > original.count("\ufffd"):
        problems.append("Unicode replacement character introduced")

    # A delimiter regression needs both measures to agree: raw counts are fooled
    # by brackets inside strings, the lexer by apostrophes in JSX text.
    if file_kind(path) in ("code", "style"):
        balance = _balance_check(path, updated)
        if balance is not None and _balance_check(path, original) is None:
            before = delimiter_counts(original)
            for pair, delta in delimiter_counts(updated).items():
                if delta != 0 and before[pair] == 0:
                    problems.append(f"Delimiter counts no longer balance for {pair}: {delta:+d} ({balance})")

    parse = _parse_check(path, updated)
    if parse is not None and _parse_check(path, original) is None:
        problems.append(f"Content no longer parses: {parse}")

    return problems
