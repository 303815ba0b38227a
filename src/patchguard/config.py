"""Configuration schema for patchguard.

Configuration is an explicit, immutable value threaded through every
component. It is loaded once at the entry point from ``.patchguard.yml``
(optional), a named preset, and ``PATCHGUARD_*`` environment overrides.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

CONFIG_FILENAME = ".patchguard.yml"
PRESETS = ("development", "testing", "production", "strict")


class CustomPatternConfig(BaseModel):
    """An additional dangerous pattern supplied by the operator."""

    model_config = ConfigDict(frozen=True)

    pattern: str
    severity: int = Field(ge=0, le=100)
    description: str
    ignore_case: bool = True

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid regex pattern {v!r}: {e}") from e
        return v


class FileOperationsConfig(BaseModel):
    """Validation thresholds and backup behavior for file edits."""

    model_config = ConfigDict(frozen=True)

    min_security_score: int = 50
    max_file_size: int = 50 * 1024 * 1024
    max_search_replace_size: int = 50 * 1024
    backup_ttl_seconds: float = 60.0
    enable_backups: bool = True
    max_backups_per_file: int = 5
    strict_mode: bool = False
    enable_syntax_validation: bool = True
    # Multiple occurrences of the search text: warn and replace the first
    # (default) or reject the operation outright.
    reject_ambiguous_matches: bool = False
    custom_dangerous_patterns: tuple[CustomPatternConfig, ...] = ()

    @field_validator("min_security_score")
    @classmethod
    def validate_min_security_score(cls, v: int) -> int:
        if not 0 <= v <= 100:
            raise ValueError("Minimum security score must be between 0 and 100")
        return v

    @field_validator("max_file_size", "max_search_replace_size")
    @classmethod
    def validate_sizes(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Size limits cannot be negative")
        return v

    @field_validator("backup_ttl_seconds")
    @classmethod
    def validate_backup_ttl(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Backup TTL cannot be negative")
        return v

    @field_validator("max_backups_per_file")
    @classmethod
    def validate_max_backups(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_backups_per_file must be at least 1")
        return v


class GitConfig(BaseModel):
    """Staging, commit and push behavior."""

    model_config = ConfigDict(frozen=True)

    max_retries: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    command_timeout_seconds: float = 30.0
    max_commit_message_length: int = 72
    commit_author_name: str = "patchguard"
    commit_author_email: str = "bot@patchguard.dev"
    default_branch: str = "main"
    remote: str = "origin"

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Maximum retries cannot be negative")
        return v

    @field_validator("base_delay_seconds", "max_delay_seconds")
    @classmethod
    def validate_delays(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Retry delays cannot be negative")
        return v

    @field_validator("command_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v < 1:
            raise ValueError("Command timeout should be at least 1 second")
        return v

    @field_validator("max_commit_message_length")
    @classmethod
    def validate_commit_length(cls, v: int) -> int:
        if v < 10:
            raise ValueError("Maximum commit message length should be at least 10 characters")
        return v

    @model_validator(mode="after")
    def validate_delay_order(self) -> GitConfig:
        if self.base_delay_seconds > self.max_delay_seconds:
            raise ValueError("Base delay cannot be greater than maximum delay")
        return self


class TelemetryConfig(BaseModel):
    """Telemetry and logging configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    log_path: str = ".patchguard/telemetry.jsonl"
    retention_days: int = 30


class PatchGuardConfig(BaseModel):
    """Complete patchguard configuration."""

    model_config = ConfigDict(frozen=True)

    file_operations: FileOperationsConfig = Field(default_factory=FileOperationsConfig)
    git: GitConfig = Field(default_factory=GitConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)

    @classmethod
    def from_preset(cls, preset: str) -> PatchGuardConfig:
        """Build a configuration from one of the named presets."""
        if preset not in _PRESET_OVERRIDES:
            raise ValueError(f"Unknown preset: {preset}. Must be one of {PRESETS}")
        return cls(**_PRESET_OVERRIDES[preset])

    @classmethod
    def load_from_file(cls, config_path: Path | str) -> PatchGuardConfig:
        """Load configuration from YAML file."""
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        preset = data.pop("preset", None)
        if preset:
            return cls(**_deep_merge(_preset_overrides(preset), data))
        return cls(**data)

    @classmethod
    def load_from_repo(cls, repo_path: Path | str) -> PatchGuardConfig:
        """Load configuration from the repository's .patchguard.yml."""
        config_path = Path(repo_path) / CONFIG_FILENAME
        if not config_path.exists():
            return cls()
        return cls.load_from_file(config_path)

    def with_env_overrides(self) -> PatchGuardConfig:
        """Return a copy with PATCHGUARD_* environment overrides applied."""
        file_ops: dict[str, Any] = {}
        git: dict[str, Any] = {}
        telemetry: dict[str, Any] = {}

        if v := os.getenv("PATCHGUARD_MIN_SECURITY_SCORE"):
            file_ops["min_security_score"] = int(v)
        if v := os.getenv("PATCHGUARD_BACKUP_TTL"):
            file_ops["backup_ttl_seconds"] = float(v)
        if v := os.getenv("PATCHGUARD_STRICT_MODE"):
            file_ops["strict_mode"] = v.strip().lower() in {"1", "true", "yes"}
        if v := os.getenv("PATCHGUARD_REJECT_AMBIGUOUS"):
            file_ops["reject_ambiguous_matches"] = v.strip().lower() in {"1", "true", "yes"}

        if v := os.getenv("PATCHGUARD_GIT_MAX_RETRIES"):
            git["max_retries"] = int(v)
        if v := os.getenv("PATCHGUARD_GIT_BASE_DELAY"):
            git["base_delay_seconds"] = float(v)
        if v := os.getenv("PATCHGUARD_GIT_MAX_DELAY"):
            git["max_delay_seconds"] = float(v)
        if v := os.getenv("PATCHGUARD_GIT_COMMAND_TIMEOUT"):
            git["command_timeout_seconds"] = float(v)
        if v := os.getenv("PATCHGUARD_GIT_AUTHOR_NAME"):
            git["commit_author_name"] = v
        if v := os.getenv("PATCHGUARD_GIT_AUTHOR_EMAIL"):
            git["commit_author_email"] = v

        if v := os.getenv("PATCHGUARD_TELEMETRY_PATH"):
            telemetry["log_path"] = v
        if os.getenv("PATCHGUARD_TELEMETRY_DISABLED") == "1":
            telemetry["enabled"] = False

        if not (file_ops or git or telemetry):
            return self

        # Re-validate through the constructors so overrides obey the same rules.
        return PatchGuardConfig(
            file_operations=FileOperationsConfig(
                **{**self.file_operations.model_dump(), **file_ops}
            ),
            git=GitConfig(**{**self.git.model_dump(), **git}),
            telemetry=TelemetryConfig(**{**self.telemetry.model_dump(), **telemetry}),
        )


_PRESET_OVERRIDES: dict[str, dict[str, Any]] = {
    "development": {
        "file_operations": {
            "min_security_score": 30,
            "strict_mode": False,
            "backup_ttl_seconds": 120.0,
        },
        "git": {"max_retries": 2},
    },
    "testing": {
        "file_operations": {
            "enable_backups": False,
            "min_security_score": 20,
            "backup_ttl_seconds": 5.0,
        },
        "git": {"max_retries": 1, "base_delay_seconds": 0.1},
        "telemetry": {"enabled": False},
    },
    "production": {
        "file_operations": {
            "min_security_score": 70,
            "strict_mode": True,
            "max_backups_per_file": 3,
            "backup_ttl_seconds": 30.0,
        },
        "git": {"max_retries": 5, "base_delay_seconds": 2.0, "max_delay_seconds": 60.0},
    },
    "strict": {
        "file_operations": {
            "min_security_score": 90,
            "strict_mode": True,
            "max_file_size": 10 * 1024 * 1024,
            "max_search_replace_size": 10 * 1024,
            "backup_ttl_seconds": 300.0,
            "reject_ambiguous_matches": True,
        },
        "git": {"max_retries": 3},
    },
}


def _preset_overrides(preset: str) -> dict[str, Any]:
    if preset not in _PRESET_OVERRIDES:
        raise ValueError(f"Unknown preset: {preset}. Must be one of {PRESETS}")
    return _PRESET_OVERRIDES[preset]


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _deep_merge(out[key], value)
        else:
            out[key] = value
    return out


def load_config(
    repo_path: Path | str | None = None,
    *,
    config_path: Path | str | None = None,
    preset: str | None = None,
) -> PatchGuardConfig:
    """
    Load configuration for one run.

    Args:
        repo_path: Repository whose .patchguard.yml should be read
        config_path: Explicit config file (takes precedence over repo_path)
        preset: Named preset used when no file is found

    Returns:
        Loaded, validated and env-overridden configuration
    """
    if config_path is not None:
        config = PatchGuardConfig.load_from_file(config_path)
    elif repo_path is not None and (Path(repo_path) / CONFIG_FILENAME).exists():
        config = PatchGuardConfig.load_from_repo(repo_path)
    elif preset:
        config = PatchGuardConfig.from_preset(preset)
    else:
        config = PatchGuardConfig()
    return config.with_env_overrides()
