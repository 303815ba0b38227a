"""Command-line interface for patchguard.

Commands:
- patchguard extract <response>: Show edit operations found in a response
- patchguard validate <response> <workspace>: Validation report, no changes
- patchguard apply <response> <workspace>: Apply, commit and push
- patchguard sanitize-message <message>: Show the sanitized commit message
- patchguard status <workspace>: Apply/push metrics from telemetry
- patchguard init <workspace>: Write a default .patchguard.yml
"""

from __future__ import annotations

import asyncio
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import TextIO

import click

from . import __version__
from .config import CONFIG_FILENAME, PRESETS, PatchGuardConfig, load_config
from .engine import PatchEngine
from .errors import UnsafePathError
from .extractor import extract, iter_blocks, validate_block_structure
from .safety.shell import sanitize_commit_message
from .status import StatusWindow, compute_status
from .validator import generate_validation_report, match_line_endings, validate
from .workspace import Workspace


def _load(workspace: Path, config: str | None, preset: str | None) -> PatchGuardConfig:
    try:
        return load_config(workspace, config_path=config, preset=preset)
    except (ValueError, FileNotFoundError) as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e


@click.group()
@click.version_option(version=__version__, prog_name="patchguard")
def cli() -> None:
    """patchguard - apply model-proposed edits to a repository safely."""
    pass


@cli.command("extract")
@click.argument("response", type=click.File("r", encoding="utf-8"))
def extract_cmd(response: TextIO) -> None:
    """Print the edit operations found in RESPONSE as JSON.

    Use "-" to read the response from stdin.
    """
    operations = extract(response.read())
    click.echo(json.dumps([asdict(op) for op in operations], indent=2))


@cli.command("validate")
@click.argument("response", type=click.File("r", encoding="utf-8"))
@click.argument("workspace", type=click.Path(exists=True, file_okay=False))
@click.option("--config", "-c", type=click.Path(exists=True), help="Config file path")
@click.option("--preset", type=click.Choice(PRESETS), help="Named configuration preset")
def validate_cmd(response: TextIO, workspace: str, config: str | None, preset: str | None) -> None:
    """Validate each operation in RESPONSE against WORKSPACE without applying.

    Every operation is checked against the files as they are now, so later
    operations that depend on earlier ones may report a missing search text.
    Malformed blocks are listed with their structural errors and fail the run.
    """
    ws = Workspace(workspace)
    cfg = _load(ws.root, config, preset)
    text = response.read()
    malformed = 0
    for index, body in enumerate(iter_blocks(text), start=1):
        structure = validate_block_structure(body, ws.root)
        if not structure["is_valid"]:
            malformed += 1
            for error in structure["errors"]:
                click.echo(f"Block {index}: {error}")

    operations = extract(text)
    if not operations and not malformed:
        click.echo("No edit operations found.")
        return

    rejected = 0
    for op in operations:
        try:
            content = ws.read_text(op.target_path)
        except UnsafePathError as e:
            click.echo(f"{op.target_path}: unsafe path ({e})")
            rejected += 1
            continue
        except (OSError, UnicodeDecodeError) as e:
            click.echo(f"{op.target_path}: cannot read ({e})")
            rejected += 1
            continue
        result = validate(match_line_endings(op, content), content, cfg.file_operations)
        if not result.is_valid:
            rejected += 1
        click.echo(generate_validation_report(op, result))
        click.echo()

    click.echo(f"{len(operations) - rejected}/{len(operations)} operations would be accepted")
    if malformed:
        click.echo(f"{malformed} malformed block(s)")
    sys.exit(0 if rejected == 0 and not malformed else 1)


@cli.command("apply")
@click.argument("response", type=click.File("r", encoding="utf-8"))
@click.argument("workspace", type=click.Path(exists=True, file_okay=False))
@click.option("--commit-message", "-m", default=None, help="Commit message (sanitized)")
@click.option("--no-commit", is_flag=True, help="Apply edits only; skip stage/commit/push")
@click.option("--push/--no-push", default=True, show_default=True, help="Push after committing")
@click.option("--branch", "-b", default=None, help="Branch to push to (default: current)")
@click.option(
    "--auth-token",
    envvar="PATCHGUARD_AUTH_TOKEN",
    default=None,
    help="Installation token for the authenticated push fallback",
)
@click.option("--preset", type=click.Choice(PRESETS), help="Named configuration preset")
@click.option("--config", "-c", type=click.Path(exists=True), help="Config file path")
@click.option(
    "--format",
    "-f",
    "format",
    type=click.Choice(["text", "json"]),
    default="text",
    show_default=True,
)
def apply_cmd(
    response: TextIO,
    workspace: str,
    commit_message: str | None,
    no_commit: bool,
    push: bool,
    branch: str | None,
    auth_token: str | None,
    preset: str | None,
    config: str | None,
    format: str,
) -> None:
    """Apply the edits in RESPONSE to WORKSPACE, then commit and push.

    Example:
        patchguard apply response.txt /path/to/clone -m "Fix typo" --no-push
    """
    ws = Workspace(workspace)
    cfg = _load(ws.root, config, preset)
    engine = PatchEngine.for_workspace(ws.root, cfg)

    try:
        outcome = asyncio.run(
            engine.run(
                response.read(),
                ws.root,
                commit_message=commit_message,
                branch=branch,
                commit=not no_commit,
                push=push and not no_commit,
                auth_token=auth_token,
            )
        )
    finally:
        # Rollback is impossible once the process exits.
        engine.close()

    if format == "json":
        click.echo(json.dumps(outcome.to_dict(), indent=2))
    else:
        click.echo(outcome.report.summary())
        if outcome.commit_sha:
            click.echo(f"Commit: {outcome.commit_sha}")
        if outcome.pushed:
            click.echo("Pushed: yes")
        if outcome.error:
            click.echo(f"Error: {outcome.error}", err=True)

    sys.exit(0 if outcome.ok else 1)


@cli.command("sanitize-message")
@click.argument("message")
@click.option("--max-length", type=int, default=72, show_default=True)
def sanitize_message_cmd(message: str, max_length: int) -> None:
    """Print MESSAGE as it would be passed to git commit."""
    if max_length < 10:
        raise click.BadParameter("must be at least 10", param_hint="--max-length")
    click.echo(sanitize_commit_message(message, max_length=max_length))


@cli.command()
@click.argument("workspace", type=click.Path(exists=True, file_okay=False))
@click.option("--config", "-c", type=click.Path(exists=True), help="Config file path")
@click.option(
    "--format",
    "-f",
    "format",
    type=click.Choice(["text", "json"]),
    default="text",
    show_default=True,
)
@click.option(
    "--window-minutes",
    type=int,
    default=60,
    show_default=True,
    help="Metrics window (best-effort from telemetry).",
)
def status(workspace: str, config: str | None, format: str, window_minutes: int) -> None:
    """Show apply/push metrics from telemetry."""
    root = Path(workspace).resolve()
    cfg = _load(root, config, None)

    telemetry_path = root / cfg.telemetry.log_path
    st = compute_status(telemetry_path, window=StatusWindow(seconds=max(1, window_minutes) * 60.0))

    if format == "json":
        click.echo(json.dumps(st, indent=2))
        return

    click.echo(f"Telemetry: {telemetry_path}")
    click.echo(f"Window: {window_minutes} minutes")
    click.echo(f"Tasks: {st['tasks']}")
    click.echo(f"Operations extracted: {st['operations_extracted']} (dropped: {st['operations_dropped']})")
    click.echo(f"Validation rejections: {st['validation_rejections']}")
    click.echo(f"Apply success rate: {st['apply_success_rate']}")
    click.echo(f"Push success rate: {st['push_success_rate']}")
    click.echo(f"Backups restored: {st['backups_restored']}")

    last = st.get("last_task") or {}
    if last:
        data = last.get("data") or {}
        click.echo()
        click.echo(
            f"Last task: run_id={last.get('run_id')} applied={data.get('applied')}/"
            f"{data.get('attempted')} pushed={data.get('pushed')} error={data.get('error')}"
        )


DEFAULT_CONFIG_YAML = """# patchguard configuration

# preset: production

file_operations:
  min_security_score: 50
  backup_ttl_seconds: 60
  enable_backups: true
  max_backups_per_file: 5
  strict_mode: false
  enable_syntax_validation: true
  reject_ambiguous_matches: false
  custom_dangerous_patterns: []
  #  - pattern: "DROP\\\\s+TABLE"
  #    severity: 85
  #    description: "SQL table drop"

git:
  max_retries: 3
  base_delay_seconds: 1.0
  max_delay_seconds: 30.0
  command_timeout_seconds: 30
  max_commit_message_length: 72
  commit_author_name: patchguard
  commit_author_email: bot@patchguard.dev
  default_branch: main
  remote: origin

telemetry:
  enabled: true
  log_path: .patchguard/telemetry.jsonl
  retention_days: 30
"""


@cli.command()
@click.argument("workspace", type=click.Path(exists=True, file_okay=False))
def init(workspace: str) -> None:
    """Write a default .patchguard.yml into WORKSPACE."""
    config_path = Path(workspace).resolve() / CONFIG_FILENAME

    if config_path.exists():
        click.echo(f"Configuration already exists: {config_path}")
        if not click.confirm("Overwrite?"):
            return

    config_path.write_text(DEFAULT_CONFIG_YAML, encoding="utf-8")
    click.echo(f"Created configuration: {config_path}")


if __name__ == "__main__":
    cli()
