"""Shell-safety primitives shared by every layer above.

- Path sanitization and containment (safe_paths.py)
- Commit-message and argument sanitizers (shell.py)
- Argument-array command execution (executor.py)
- Secret redaction (redaction.py)
- Telemetry logging (telemetry.py)
"""
