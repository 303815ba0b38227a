import os
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

DEFAULT_ALLOWED_ARGV: list[list[str]] = [
    ["git", "add"],
    ["git", "commit"],
    ["git", "push"],
    ["git", "diff"],
    ["git", "status"],
    ["git", "config"],
    ["git", "rev-parse"],
    ["git", "remote"],
    ["git", "checkout"],
    ["git", "log"],
]


@dataclass(frozen=True)
class CommandResult:
    argv: list[str]
    exit_code: int
    stdout: str
    stderr: str
    duration_s: float = 0.0
    rejected: bool = False
    reject_reason: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.rejected


class SafeCommandExecutor:
    """
    Argument-array command runner.

    Key security properties:
    - Executes an argv list (no shell, no string interpolation).
    - Allowlist is validated against parsed argv (command + args prefix).
    - Arguments containing NUL or newlines are rejected before spawning.
    """

    def __init__(
        self,
        cwd: Path,
        allowed_argv: list[list[str]] | None = None,
        enforce_allowlist: bool = True,
        timeout_s: float = 30.0,
        env: dict[str, str] | None = None,
    ):
        self.cwd = Path(cwd)
        self.allowed_argv = allowed_argv if allowed_argv is not None else DEFAULT_ALLOWED_ARGV
        self.enforce_allowlist = enforce_allowlist
        self.timeout_s = timeout_s
        self.env = env or {}

    def _check_argv_allowed(self, argv: list[str]) -> tuple[bool, str]:
        if not argv:
            return False, "Empty argv"

        for a in argv:
            if not isinstance(a, str):
                return False, "Non-string argument"
            if any(ch in a for ch in ["\n", "\r", "\x00"]):
                return False, "Newlines/NUL not allowed"

        if self.enforce_allowlist:
            if not self.allowed_argv:
                return False, "Allowlist enforcement enabled but allowlist is empty"
            for allowed in self.allowed_argv:
                if allowed and argv[: len(allowed)] == allowed:
                    return True, ""
            return False, "Command not in allowlist"

        return True, ""

    def run(
        self,
        argv: list[str],
        timeout_s: float | None = None,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        t0 = time.time()

        ok, reason = self._check_argv_allowed(argv)
        if not ok:
            return CommandResult(
                argv=list(argv),
                exit_code=126,
                stdout="",
                stderr=f"Command rejected: {reason}",
                duration_s=round(time.time() - t0, 3),
                rejected=True,
                reject_reason=reason,
            )

        merged_env = os.environ.copy()
        # Never block on an interactive credential prompt.
        merged_env["GIT_TERMINAL_PROMPT"] = "0"
        merged_env.update(self.env)
        if env:
            merged_env.update(env)

        try:
            p = subprocess.run(
                argv,
                cwd=str(self.cwd),
                text=True,
                capture_output=True,
                timeout=timeout_s if timeout_s is not None else self.timeout_s,
                shell=False,
                env=merged_env,
            )
        except FileNotFoundError:
            return CommandResult(
                argv=list(argv),
                exit_code=127,
                stdout="",
                stderr=f"Executable not found: {argv[0]}",
                duration_s=round(time.time() - t0, 3),
            )
        except subprocess.TimeoutExpired:
            return CommandResult(
                argv=list(argv),
                exit_code=124,
                stdout="",
                stderr=f"Command timed out after {timeout_s or self.timeout_s}s",
                duration_s=round(time.time() - t0, 3),
            )

        return CommandResult(
            argv=list(argv),
            exit_code=p.returncode,
            stdout=p.stdout,
            stderr=p.stderr,
            duration_s=round(time.time() - t0, 3),
        )
