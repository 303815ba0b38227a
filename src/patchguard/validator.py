"""Validation of edit operations before they touch the filesystem.

``validate`` is a pure function of (operation, current file content,
configuration): no I/O, no caching, deterministic output. It scores each
operation against the dangerous-pattern table, applies shape penalties, checks
that the search text is present, runs an extension-specific syntax check on
the would-be result, and decides accept/reject.
"""

from __future__ import annotations

import dataclasses

from .config import FileOperationsConfig
from .patterns import pattern_table
from .syntax import check_syntax
from .types import EditOperation, ValidationResult

HIGH_COMPLEXITY_SCORE_BONUS = 20
SYNTAX_PENALTY = 15
SIZE_RATIO_PENALTY = 10
LINE_DELTA_PENALTY = 5
SIZE_RATIO_LIMIT = 10
SIZE_RATIO_MIN_CHARS = 1000
LINE_DELTA_LIMIT = 100


def splice_first(content: str, search_text: str, replace_text: str) -> str:
    """Replace only the leftmost occurrence of ``search_text``."""
    idx = content.find(search_text)
    if idx == -1:
        return content
    return content[:idx] + replace_text + content[idx + len(search_text):]


def match_line_endings(op: EditOperation, content: str) -> EditOperation:
    """
    Adapt a multi-line operation to a CRLF file.

    Extracted text is always LF. When the file uses CRLF, the LF search text
    is absent and its CRLF form is present, both search and replace are
    converted so the splice matches and the file keeps its line endings.
    """
    search = op.search_text
    if "\n" not in search or "\r\n" not in content or search in content:
        return op
    crlf_search = search.replace("\r\n", "\n").replace("\n", "\r\n")
    if crlf_search not in content:
        return op
    crlf_replace = op.replace_text.replace("\r\n", "\n").replace("\n", "\r\n")
    return dataclasses.replace(op, search_text=crlf_search, replace_text=crlf_replace)


def classify_complexity(op: EditOperation, match_count: int) -> str:
    """
    Weighted complexity estimate for an operation.

    Size, line count, match count and special-character density each
    contribute points; < 3 is low, < 6 medium, otherwise high.
    """
    text = op.search_text + op.replace_text
    size = len(text)
    lines = op.search_text.count("\n") + op.replace_text.count("\n") + 2

    points = 0
    if size > 5000:
        points += 3
    elif size > 1000:
        points += 2
    elif size > 200:
        points += 1

    if lines > 100:
        points += 3
    elif lines > 30:
        points += 2
    elif lines > 10:
        points += 1

    if match_count > 3:
        points += 2
    elif match_count > 1:
        points += 1

    non_space = [c for c in text if not c.isspace()]
    if non_space:
        special = sum(1 for c in non_space if not c.isalnum() and c != "_")
        density = special / len(non_space)
        if density > 0.4:
            points += 2
        elif density > 0.25:
            points += 1

    if points < 3:
        return "low"
    if points < 6:
        return "medium"
    return "high"


def validate(
    op: EditOperation,
    current_content: str,
    config: FileOperationsConfig | None = None,
) -> ValidationResult:
    """
    Score and syntax-check one edit operation.

    Args:
        op: Operation to validate
        current_content: The target file's content as it is right now
        config: Thresholds and policy (defaults if omitted)

    Returns:
        ValidationResult; never raises for bad operations
    """
    config = config or FileOperationsConfig()
    errors: list[str] = []
    warnings: list[str] = []
    score = 100
    syntax_valid = True
    search, replace = op.search_text, op.replace_text

    if not search.strip():
        errors.append("Search text cannot be empty")
    if search == replace:
        warnings.append("Search and replace text are identical")

    # Size limits
    if len(search.encode("utf-8")) > config.max_search_replace_size:
        errors.append(
            f"Search text exceeds maximum size ({config.max_search_replace_size} bytes)"
        )
    if len(replace.encode("utf-8")) > config.max_search_replace_size:
        errors.append(
            f"Replacement text exceeds maximum size ({config.max_search_replace_size} bytes)"
        )
    if len(current_content.encode("utf-8")) > config.max_file_size:
        errors.append(f"File exceeds maximum size ({config.max_file_size} bytes)")

    # Dangerous patterns: the single worst match sets the ceiling.
    for pattern in pattern_table(config.custom_dangerous_patterns):
        if pattern.matches(search) or pattern.matches(replace):
            errors.append(
                f"{pattern.tier}: {pattern.description} (severity {pattern.severity})"
            )
            score = min(score, 100 - pattern.severity)

    # Shape penalties
    if len(replace) > SIZE_RATIO_LIMIT * max(len(search), 1) and len(replace) > SIZE_RATIO_MIN_CHARS:
        warnings.append(
            f"Replacement is {len(replace) // max(len(search), 1)}x larger than the search text"
        )
        score -= SIZE_RATIO_PENALTY
    if abs(op.line_delta) > LINE_DELTA_LIMIT:
        warnings.append(f"Large line-count change ({op.line_delta:+d} lines)")
        score -= LINE_DELTA_PENALTY

    # Match semantics: only the leftmost occurrence is ever replaced.
    match_count = current_content.count(search) if search else 0
    if match_count == 0:
        errors.append("Search text not found in file")
    elif match_count > 1:
        message = (
            f"Search text appears {match_count} times in file - "
            "only the first occurrence will be replaced"
        )
        if config.reject_ambiguous_matches:
            errors.append(f"Ambiguous match: {message}")
        else:
            warnings.append(message)

    if config.enable_syntax_validation and match_count > 0:
        updated = splice_first(current_content, search, replace)
        report = check_syntax(op.target_path, current_content, updated)
        errors.extend(report.errors)
        warnings.extend(report.warnings)
        if not report.valid:
            syntax_valid = False
            score -= SYNTAX_PENALTY

    score = max(0, min(100, score))
    complexity = classify_complexity(op, match_count)

    threshold = config.min_security_score
    if complexity == "high":
        if config.strict_mode:
            errors.append("High complexity operations are not allowed in strict mode")
        threshold = min(100, threshold + HIGH_COMPLEXITY_SCORE_BONUS)

    is_valid = not errors and score >= threshold

    return ValidationResult(
        is_valid=is_valid,
        errors=tuple(errors),
        warnings=tuple(warnings),
        security_score=score,
        complexity=complexity,
        syntax_valid=syntax_valid,
    )


def generate_validation_report(op: EditOperation, result: ValidationResult) -> str:
    """
    Generate human-readable report for a validated operation.

    Args:
        op: Operation that was validated
        result: Result from validate()

    Returns:
        Formatted report string
    """
    lines = []
    lines.append(f"Validation: {op.target_path}")
    lines.append("=" * 60)
    lines.append(f"Search Length: {len(op.search_text)}")
    lines.append(f"Replace Length: {len(op.replace_text)}")
    lines.append(f"Line Delta: {op.line_delta:+d}")
    lines.append(f"Security Score: {result.security_score}")
    lines.append(f"Complexity: {result.complexity}")
    lines.append(f"Syntax Valid: {result.syntax_valid}")
    lines.append("")

    if result.errors:
        lines.append("Errors:")
        for e in result.errors:
            lines.append(f"  - {e}")
    if result.warnings:
        lines.append("Warnings:")
        for w in result.warnings:
            lines.append(f"  - {w}")
    if not result.errors and not result.warnings:
        lines.append("No issues identified.")

    lines.append("")
    lines.append(f"Decision: {'ACCEPT' if result.is_valid else 'REJECT'}")
    return "\n".join(lines)
