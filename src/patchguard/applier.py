"""Apply validated edit operations to a workspace.

Per operation: contain the path, re-read the file fresh, re-validate against
that content, back the file up, splice at the leftmost occurrence, write
atomically, then verify what landed on disk. Any failure after the backup is
taken restores the file. Outcomes are returned, never raised, so one bad
operation cannot stop the rest of a batch.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

from .backup import BackupManager
from .config import FileOperationsConfig
from .errors import IntegrityError, UnsafePathError
from .safety.redaction import redact_text
from .safety.telemetry import TelemetrySink
from .syntax import check_integrity
from .types import ApplyOutcome, BackupRecord, BatchReport, EditOperation, Rejected
from .validator import match_line_endings, splice_first, validate
from .workspace import Workspace


def _verify_written(workspace: Workspace, rel_path: str, original: str, expected: str) -> None:
    """Raise IntegrityError if the file on disk is not what we meant to write."""
    try:
        on_disk = workspace.read_text(rel_path)
    except (OSError, UnicodeDecodeError) as e:
        raise IntegrityError(f"Could not re-read written file: {e}") from e
    if on_disk != expected:
        raise IntegrityError("Written content does not match the intended content")
    problems = check_integrity(rel_path, original, on_disk)
    if problems:
        raise IntegrityError("; ".join(problems))


def _rollback(
    workspace: Workspace,
    backups: BackupManager,
    rel_path: str,
    record: BackupRecord | None,
    original: str,
) -> str | None:
    """Restore the pre-edit content. Returns an error string if that failed too."""
    try:
        if record is not None:
            backups.restore(record)
        else:
            workspace.write_atomic(rel_path, original)
    except OSError as e:
        return f"rollback failed: {e}"
    return None


def apply_operation(
    op: EditOperation,
    workspace: Workspace,
    config: FileOperationsConfig | None = None,
    *,
    backups: BackupManager | None = None,
    telemetry: TelemetrySink | None = None,
    run_id: str = "apply",
) -> ApplyOutcome:
    """
    Apply one edit operation.

    Args:
        op: Operation to apply
        workspace: Workspace the operation is confined to
        config: Validation thresholds and backup policy
        backups: Backup manager (one is created from config if omitted)
        telemetry: Sink for apply/validation events
        run_id: Run identifier recorded with telemetry events

    Returns:
        ApplyOutcome; applied is False on rejection or any failure
    """
    config = config or FileOperationsConfig()
    sink = telemetry or TelemetrySink.disabled()
    if backups is None:
        backups = BackupManager(
            workspace,
            ttl_seconds=config.backup_ttl_seconds,
            max_backups_per_file=config.max_backups_per_file,
            telemetry=sink,
            run_id=run_id,
        )
    rel_path = op.target_path

    def fail(error: str, warnings: list[str] | None = None, score: int | None = None) -> ApplyOutcome:
        error = redact_text(error)
        sink.log(run_id, "apply_failed", {"path": rel_path, "error": error})
        return ApplyOutcome(rel_path, False, error, list(warnings or []), score)

    try:
        path = workspace.resolve(rel_path)
    except UnsafePathError as e:
        return fail(f"Unsafe path: {e}")
    if not path.is_file():
        return fail(f"File not found: {rel_path}")

    # Fresh read: earlier operations in the batch may have changed this file.
    try:
        original = workspace.read_text(rel_path)
    except (OSError, UnicodeDecodeError) as e:
        return fail(f"Could not read file: {e}")

    op = match_line_endings(op, original)
    result = validate(op, original, config)
    verdict = result.verdict()
    if isinstance(verdict, Rejected):
        sink.log(
            run_id,
            "validation_rejected",
            {
                "path": rel_path,
                "security_score": result.security_score,
                "complexity": result.complexity,
                "reasons": [redact_text(r) for r in verdict.reasons],
            },
        )
        return ApplyOutcome(
            target_path=rel_path,
            applied=False,
            error=redact_text(verdict.reason),
            warnings=list(result.warnings),
            security_score=result.security_score,
        )
    if result.warnings:
        sink.log(run_id, "validation_warnings", {"path": rel_path, "warnings": list(result.warnings)})

    record: BackupRecord | None = None
    if config.enable_backups:
        try:
            record = backups.create(path)
        except OSError as e:
            return fail(
                f"Backup failed: {e}",
                warnings=list(result.warnings),
                score=result.security_score,
            )

    updated = splice_first(original, op.search_text, op.replace_text)
    try:
        workspace.write_atomic(rel_path, updated)
        _verify_written(workspace, rel_path, original, updated)
    except (OSError, IntegrityError) as e:
        label = "Integrity check failed" if isinstance(e, IntegrityError) else "Write failed"
        message = f"{label}: {e}"
        rollback_error = _rollback(workspace, backups, rel_path, record, original)
        if rollback_error:
            message = f"{message}; {rollback_error}"
        return fail(message, list(result.warnings), result.security_score)

    if record is not None:
        backups.schedule_cleanup(record)

    sink.log(
        run_id,
        "apply_succeeded",
        {
            "path": rel_path,
            "security_score": result.security_score,
            "complexity": result.complexity,
            "line_delta": op.line_delta,
        },
    )
    return ApplyOutcome(
        target_path=rel_path,
        applied=True,
        warnings=list(result.warnings),
        security_score=result.security_score,
    )


def apply_batch(
    ops: Iterable[EditOperation],
    workspace: Workspace | Path | str,
    config: FileOperationsConfig | None = None,
    *,
    backups: BackupManager | None = None,
    telemetry: TelemetrySink | None = None,
    run_id: str = "apply",
) -> BatchReport:
    """Apply operations in order; each is validated against the file as it is then."""
    config = config or FileOperationsConfig()
    sink = telemetry or TelemetrySink.disabled()
    if not isinstance(workspace, Workspace):
        workspace = Workspace(workspace)
    if backups is None:
        backups = BackupManager(
            workspace,
            ttl_seconds=config.backup_ttl_seconds,
            max_backups_per_file=config.max_backups_per_file,
            telemetry=sink,
            run_id=run_id,
        )

    report = BatchReport()
    for op in ops:
        report.outcomes.append(
            apply_operation(op, workspace, config, backups=backups, telemetry=sink, run_id=run_id)
        )
    return report
