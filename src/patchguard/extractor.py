"""Operation extraction from free-form model output.

Model responses carry edits in fenced blocks::

    ```edit
    FILE: path/to/file.ext
    <<<<<<< SEARCH
    exact existing text
    =======
    replacement text
    >>>>>>> REPLACE
    ```

``search-replace`` is accepted as the fence tag as well. Everything outside
such blocks is ignored. Malformed blocks and pairs are dropped and recorded in
telemetry; extraction itself never raises on bad input.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

from .safety.safe_paths import sanitize_file_path
from .safety.telemetry import TelemetrySink
from .types import EditOperation

FENCE_TAGS = ("edit", "search-replace")

SEARCH_MARKER = "<<<<<<< SEARCH"
DIVIDER_MARKER = "======="
REPLACE_MARKER = ">>>>>>> REPLACE"

_FENCE_OPEN = r"^[ \t]*```[ \t]*(?:" + "|".join(re.escape(t) for t in FENCE_TAGS) + r")[ \t]*\n"
# The body is consumed line by line and may not contain a fence line, so an
# unterminated block never runs into the next one.
_BLOCK_RE = re.compile(
    _FENCE_OPEN
    + r"((?:(?![ \t]*```)[^\n]*\n)*?)"
    r"[ \t]*```[ \t]*$",
    re.MULTILINE,
)
_OPEN_RE = re.compile(_FENCE_OPEN, re.MULTILINE)
_FILE_RE = re.compile(r"^[ \t]*FILE:[ \t]*(.*?)[ \t]*$", re.MULTILINE)
_PAIR_RE = re.compile(
    r"^<<<<<<< SEARCH[ \t]*\n(.*?)^=======[ \t]*\n(.*?)^>>>>>>> REPLACE[ \t]*$",
    re.MULTILINE | re.DOTALL,
)


def sanitize_content(text: str) -> str:
    """Strip NUL bytes; everything else is preserved byte-for-byte."""
    if not text:
        return ""
    return text.replace("\x00", "")


def _strip_one_newline(text: str) -> str:
    return text[:-1] if text.endswith("\n") else text


def iter_blocks(raw_text: str) -> list[str]:
    """Return the bodies of all fenced edit blocks in appearance order."""
    if not raw_text:
        return []
    normalized = raw_text.replace("\r\n", "\n")
    return [m.group(1) for m in _BLOCK_RE.finditer(normalized)]


def _split_header(block: str) -> str:
    idx = block.find(SEARCH_MARKER)
    return block if idx == -1 else block[:idx]


def extract(
    raw_text: str,
    telemetry: TelemetrySink | None = None,
    run_id: str = "extract",
) -> list[EditOperation]:
    """
    Parse a model response into edit operations.

    Args:
        raw_text: Raw model response
        telemetry: Optional sink for dropped-block/pair events
        run_id: Run identifier recorded with telemetry events

    Returns:
        EditOperations in appearance order
    """
    sink = telemetry or TelemetrySink.disabled()
    operations: list[EditOperation] = []

    blocks = iter_blocks(raw_text)
    unterminated = len(_OPEN_RE.findall(raw_text.replace("\r\n", "\n"))) - len(blocks) if raw_text else 0
    if unterminated > 0:
        sink.log(run_id, "operation_dropped", {"reason": "unterminated block", "count": unterminated})

    for block_index, block in enumerate(blocks):
        declared = _FILE_RE.findall(_split_header(block))
        if len(declared) != 1:
            sink.log(
                run_id,
                "operation_dropped",
                {
                    "block": block_index,
                    "reason": "missing FILE declaration" if not declared else "multiple FILE declarations",
                },
            )
            continue

        target_path = sanitize_file_path(declared[0])
        if not target_path:
            sink.log(
                run_id,
                "operation_dropped",
                {"block": block_index, "reason": "path empty after sanitization"},
            )
            continue

        pairs = list(_PAIR_RE.finditer(block))
        if not pairs:
            sink.log(
                run_id,
                "operation_dropped",
                {"block": block_index, "path": target_path, "reason": "no SEARCH/REPLACE pairs"},
            )
            continue

        for pair_index, m in enumerate(pairs):
            search_text = sanitize_content(_strip_one_newline(m.group(1)))
            replace_text = sanitize_content(_strip_one_newline(m.group(2)))
            if not search_text:
                sink.log(
                    run_id,
                    "operation_dropped",
                    {
                        "block": block_index,
                        "pair": pair_index,
                        "path": target_path,
                        "reason": "search text empty after sanitization",
                    },
                )
                continue
            operations.append(EditOperation(target_path, search_text, replace_text))
            sink.log(
                run_id,
                "operation_extracted",
                {
                    "block": block_index,
                    "pair": pair_index,
                    "path": target_path,
                    "search_len": len(search_text),
                    "replace_len": len(replace_text),
                },
            )

    return operations


def validate_block_structure(block: str, workspace_root: Path | str) -> dict[str, Any]:
    """
    Check the structure of a single edit block body before extraction.

    Args:
        block: Block body (text between the fences)
        workspace_root: Workspace used to check that the target exists

    Returns:
        Dict with is_valid, errors and warnings
    """
    errors: list[str] = []
    warnings: list[str] = []
    block = block.replace("\r\n", "\n")

    declared = _FILE_RE.findall(_split_header(block))
    if not declared:
        errors.append("Missing FILE declaration")
    elif len(declared) > 1:
        errors.append("Multiple FILE declarations")
    else:
        raw_path = declared[0]
        if ".." in raw_path.replace("\\", "/").split("/"):
            errors.append("File path contains directory traversal")
        elif raw_path.startswith(("/", "\\")):
            errors.append("File path is absolute")
        elif "\x00" in raw_path:
            errors.append("File path contains NUL bytes")
        else:
            sanitized = sanitize_file_path(raw_path)
            if not sanitized:
                errors.append("File path is empty after sanitization")
            elif not (Path(workspace_root) / sanitized).is_file():
                warnings.append(f"File does not exist: {sanitized}")

    searches = block.count(SEARCH_MARKER)
    dividers = len(re.findall(r"^=======[ \t]*$", block, re.MULTILINE))
    replaces = block.count(REPLACE_MARKER)
    if searches == 0:
        errors.append("No SEARCH/REPLACE pairs found")
    elif not (searches == replaces and dividers >= searches):
        errors.append(
            f"Unbalanced markers: {searches} SEARCH, {dividers} divider, {replaces} REPLACE"
        )
    elif len(_PAIR_RE.findall(block)) != searches:
        errors.append("Malformed SEARCH/REPLACE pair")

    return {"is_valid": not errors, "errors": errors, "warnings": warnings}
