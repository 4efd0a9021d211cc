"""Mapping request paths onto a capsule directory without escaping it."""

from pathlib import Path

INDEX_FILE = "index.gmi"


class ForbiddenPath(Exception):
    """Raised when a requested path escapes the capsule directory."""


def resolve_capsule_path(directory: str, request_path: str) -> Path:
    """Resolve ``request_path`` inside ``directory``.

    Directories resolve to their ``index.gmi``. The returned path may not
    exist; callers decide how to report that.
    """
    if "\x00" in request_path:
        raise ForbiddenPath(request_path)

    root = Path(directory).resolve()
    relative = request_path.lstrip("/")
    if ".." in Path(relative).parts:
        raise ForbiddenPath(request_path)

    target = (root / relative).resolve()
    if target != root and root not in target.parents:
        raise ForbiddenPath(request_path)

    if target.is_dir():
        target = target / INDEX_FILE
    return target
