"""Per-response pipeline: extract, validate/apply, stage, commit, push.

One ``PatchEngine.run`` call handles one model response against one
exclusively-owned working copy. Operations are applied strictly in text order
so a later operation is validated against the result of an earlier one on the
same file. Rejections are per-operation outcomes; only version-control
failures end the task with an error.
"""

from __future__ import annotations

import uuid
from pathlib import Path

from .applier import apply_batch
from .backup import BackupManager, CleanupScheduler
from .config import PatchGuardConfig
from .errors import GitCommandError
from .extractor import extract
from .github_auth import authenticated_remote_url
from .safety.executor import SafeCommandExecutor
from .safety.redaction import redact_text
from .safety.telemetry import TelemetrySink, prune_telemetry_file
from .types import BatchReport, TaskOutcome
from .vcs import GitRepo, RetryPolicy
from .workspace import Workspace


class PatchEngine:
    """
    Orchestrates one response end to end.

    The engine owns the cleanup scheduler for backups it creates; call
    ``close()`` (or ``flush_backups()``) when the process is about to exit.
    """

    def __init__(
        self,
        config: PatchGuardConfig | None = None,
        telemetry: TelemetrySink | None = None,
    ):
        self.config = config or PatchGuardConfig()
        self.telemetry = telemetry or TelemetrySink.disabled()
        self.scheduler = CleanupScheduler()

    @classmethod
    def for_workspace(cls, workspace_root: Path | str, config: PatchGuardConfig) -> PatchEngine:
        """Build an engine whose telemetry lives inside the workspace."""
        telemetry = TelemetrySink(
            enabled=config.telemetry.enabled,
            path=Path(workspace_root) / config.telemetry.log_path,
        )
        if telemetry.enabled:
            prune_telemetry_file(telemetry.path, config.telemetry.retention_days)
        return cls(config, telemetry)

    def _backups(self, workspace: Workspace, run_id: str) -> BackupManager:
        file_ops = self.config.file_operations
        return BackupManager(
            workspace,
            ttl_seconds=file_ops.backup_ttl_seconds,
            max_backups_per_file=file_ops.max_backups_per_file,
            scheduler=self.scheduler,
            telemetry=self.telemetry,
            run_id=run_id,
        )

    def apply(self, raw_response: str, workspace_root: Path | str, run_id: str | None = None) -> BatchReport:
        """Extract and apply every operation without touching git."""
        run_id = run_id or str(uuid.uuid4())[:8]
        workspace = Workspace(workspace_root)
        backups = self._backups(workspace, run_id)
        # Leftovers from a crashed run are past any useful rollback window.
        backups.purge_expired()

        operations = extract(raw_response, telemetry=self.telemetry, run_id=run_id)
        return apply_batch(
            operations,
            workspace,
            self.config.file_operations,
            backups=backups,
            telemetry=self.telemetry,
            run_id=run_id,
        )

    def _resolve_auth_url(
        self,
        repo: GitRepo,
        auth_url: str | None,
        auth_token: str | None,
    ) -> str | None:
        if auth_url or not auth_token:
            return auth_url
        remote = repo.remote_url(self.config.git.remote)
        if not remote or not remote.startswith("https://"):
            return None
        return authenticated_remote_url(remote, auth_token)

    async def run(
        self,
        raw_response: str,
        workspace_root: Path | str,
        *,
        commit_message: str | None = None,
        branch: str | None = None,
        commit: bool = True,
        push: bool = True,
        auth_url: str | None = None,
        auth_token: str | None = None,
    ) -> TaskOutcome:
        """
        Process one model response against one working copy.

        Args:
            raw_response: Free-text model output containing edit blocks
            workspace_root: Working copy (a git clone) owned by this task
            commit_message: Message for the commit (sanitized; generic fallback)
            branch: Branch to push to (current branch if omitted)
            commit: Stage and commit after applying
            push: Push after committing
            auth_url: Authenticated remote used as the push fallback
            auth_token: Installation token used to build ``auth_url`` from
                the configured remote when ``auth_url`` is not given

        Returns:
            TaskOutcome with per-operation report, commit SHA and push status
        """
        run_id = str(uuid.uuid4())[:8]
        git_cfg = self.config.git
        secrets = [s for s in (auth_token,) if s]

        report = self.apply(raw_response, workspace_root, run_id=run_id)
        outcome = TaskOutcome(report=report)

        if commit:
            repo = GitRepo(
                workspace_root,
                SafeCommandExecutor(cwd=Path(workspace_root), timeout_s=git_cfg.command_timeout_seconds),
                telemetry=self.telemetry,
                run_id=run_id,
                secrets=secrets,
            )
            try:
                repo.set_identity(git_cfg.commit_author_name, git_cfg.commit_author_email)
                repo.stage(report.changed_paths)
                outcome.commit_sha = await repo.commit(
                    commit_message or "",
                    allow_empty=True,
                    max_length=git_cfg.max_commit_message_length,
                )
                if push:
                    target = branch or repo.current_branch()
                    if not target or target == "HEAD":
                        target = git_cfg.default_branch
                    await repo.push_with_retry(
                        target,
                        RetryPolicy.from_config(git_cfg),
                        auth_url=self._resolve_auth_url(repo, auth_url, auth_token),
                        remote=git_cfg.remote,
                    )
                    outcome.pushed = True
            except (GitCommandError, ValueError) as e:
                outcome.error = redact_text(str(e), secrets=secrets)

        self.telemetry.log(
            run_id,
            "task_completed",
            {
                "attempted": report.attempted,
                "applied": report.applied,
                "rejected": report.rejected,
                "commit_sha": outcome.commit_sha,
                "pushed": outcome.pushed,
                "error": outcome.error,
            },
        )
        return outcome

    def flush_backups(self) -> int:
        """Delete every backup still waiting for its TTL."""
        return self.scheduler.flush()

    def close(self) -> None:
        self.flush_backups()
