import re
from pathlib import Path

from ..errors import UnsafePathError

FORBIDDEN_COMPONENTS = {".git", ".ssh", ".patchguard"}

_ILLEGAL_CHARS = re.compile(r'[<>:"|?*]')


def sanitize_file_path(file_path: str) -> str:
    """Normalize a model-supplied path into a workspace-relative one.

    Strips NUL bytes, removes ``..`` segments, normalizes separators, drops
    leading separators and filesystem-illegal characters. Returns "" when
    nothing usable remains.
    """
    if not file_path or not isinstance(file_path, str):
        return ""
    sanitized = file_path.replace("\x00", "").replace("\\", "/")
    sanitized = _ILLEGAL_CHARS.sub("", sanitized).strip()
    parts = [p for p in sanitized.split("/") if p not in ("", ".", "..")]
    # Catch "..." style segments that still collapse to traversal after stripping.
    parts = [p for p in parts if p.strip(".")]
    return "/".join(parts).strip()


def safe_resolve(root: Path, rel_path: str) -> Path:
    # Normalize root to avoid false "escape" on platforms where `resolve()`
    # canonicalizes paths (e.g., macOS /var -> /private/var).
    root = Path(root).resolve()
    if "\x00" in rel_path:
        raise UnsafePathError("NUL byte in path")
    if rel_path.startswith("/") or rel_path.startswith("\\"):
        raise UnsafePathError("Absolute paths not allowed")
    p = (root / rel_path).resolve()
    if root != p and root not in p.parents:
        raise UnsafePathError("Path escapes workspace root")
    for part in p.relative_to(root).parts:
        if part in FORBIDDEN_COMPONENTS:
            raise UnsafePathError(f"Forbidden path component: {part}")
    return p
