"""Workspace containment for tool paths."""

from pathlib import Path

from qogito.exceptions import AccessDeniedError


def resolve_in_workspace(requested: str, workspace_root: Path | str) -> Path:
    """Resolve a tool path against the workspace root.

    Relative paths are anchored at the root; absolute paths are accepted only
    when they lie inside it. Symlinks are resolved before the check.

    Raises:
        AccessDeniedError: when the resolved path escapes the root
    """
    root = Path(workspace_root).resolve()
    candidate = (root / (requested or ".")).resolve()
    try:
        candidate.relative_to(root)
    except ValueError:
        raise AccessDeniedError(requested) from None
    return candidate


def read_text_exact(path: Path) -> str:
    """Read UTF-8 text without newline translation."""
    with open(path, encoding="utf-8", errors="replace", newline="") as f:
        return f.read()


def write_text_exact(path: Path, content: str) -> None:
    """Write UTF-8 text without newline translation."""
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(content)
