"""Path utilities for repository discovery and symlink checks.

Paths are made absolute lexically. Symlinks are deliberately not resolved,
since whether a path or one of its ancestors is a symlink is itself what the
track command needs to inspect.
"""

import os
from pathlib import Path

from stor.core.constants import ENV_DIR, LEDGER_FILENAME
from stor.core.errors import NotRepository


def resolve_start_dir(start: str | Path | None = None) -> Path:
    """Resolve the directory repository discovery starts from.

    Args:
        start: Optional explicit directory

    Returns:
        Absolute directory path, from ``start``, ``STOR_DIR`` or the cwd
    """
    chosen: str | Path | None = start
    env_dir = os.getenv(ENV_DIR)
    if chosen is None and env_dir:
        chosen = env_dir
    if chosen is None:
        chosen = Path.cwd()

    return absolute_path(Path(chosen).expanduser())


def absolute_path(path: str | Path, cwd: Path | None = None) -> Path:
    """Make ``path`` absolute and normalised without following symlinks."""
    path = Path(path)
    if not path.is_absolute():
        path = (cwd or Path.cwd()) / path
    return Path(os.path.normpath(path))


def is_repository(path: Path) -> bool:
    """Check whether ``path`` directly holds a ledger file."""
    return (path / LEDGER_FILENAME).is_file()


def find_root(start: Path) -> Path:
    """Find the nearest ancestor of ``start`` (inclusive) holding a ledger.

    Raises:
        NotRepository: If no ancestor is a repository
    """
    for candidate in (start, *start.parents):
        if is_repository(candidate):
            return candidate
    raise NotRepository(str(start))


def find_parent_root(path: Path) -> Path | None:
    """Find a repository strictly above ``path``, if any."""
    for candidate in path.parents:
        if is_repository(candidate):
            return candidate
    return None


def symlinked_ancestor(path: Path) -> Path | None:
    """Return the first of ``path`` and its ancestors that is a symlink.

    Args:
        path: Absolute path to inspect

    Returns:
        ``path`` itself if it is a symlink, else the nearest symlinked
        ancestor, else None
    """
    for candidate in (path, *path.parents):
        if candidate.is_symlink():
            return candidate
    return None


def is_within(path: Path, root: Path) -> bool:
    return path == root or root in path.parents


def relative_to_root(path: Path, root: Path) -> str:
    """Express ``path`` relative to ``root`` using forward slashes."""
    return path.relative_to(root).as_posix()
