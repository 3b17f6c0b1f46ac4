"""Tests for repository discovery and symlink ancestry helpers."""

from pathlib import Path

import pytest

from stor.core.errors import NotRepository
from stor.fs.paths import (
    absolute_path,
    find_parent_root,
    find_root,
    is_within,
    relative_to_root,
    resolve_start_dir,
    symlinked_ancestor,
)


def test_find_root_from_nested_directory(repo: Path) -> None:
    """Test that the nearest ancestor holding a ledger is returned."""
    nested = repo / "a" / "b"
    nested.mkdir(parents=True)

    assert find_root(nested) == repo
    assert find_root(repo) == repo


def test_find_root_outside_repository(home: Path) -> None:
    """Test that a directory with no repository above it is rejected."""
    with pytest.raises(NotRepository):
        find_root(home)


def test_find_parent_root_excludes_start(repo: Path) -> None:
    """Test that only strict ancestors count as parent repositories."""
    child = repo / "child"
    child.mkdir()

    assert find_parent_root(repo) is None
    assert find_parent_root(child) == repo


def test_ledger_directory_does_not_mark_repository(base: Path) -> None:
    """Test that a directory named like the ledger is not a repository."""
    (base / ".stor").mkdir()

    with pytest.raises(NotRepository):
        find_root(base)


def test_symlinked_ancestor(home: Path, base: Path) -> None:
    """Test detection of the path itself or an ancestor being a symlink."""
    real = base / "real"
    (real / "sub").mkdir(parents=True)
    link = home / "link"
    link.symlink_to(real)

    assert symlinked_ancestor(link) == link
    assert symlinked_ancestor(link / "sub" / "file") == link
    assert symlinked_ancestor(real / "sub") is None


def test_absolute_path_does_not_follow_symlinks(home: Path, base: Path) -> None:
    """Test that relative paths are anchored lexically."""
    (home / "link").symlink_to(base)

    assert absolute_path("link/../x", home) == home / "x"
    assert absolute_path("link", home) == home / "link"
    assert absolute_path(base / "y") == base / "y"


def test_resolve_start_dir_prefers_explicit_then_env(
    monkeypatch: pytest.MonkeyPatch, base: Path, home: Path
) -> None:
    """Test the precedence of an explicit dir, STOR_DIR and the cwd."""
    monkeypatch.chdir(base)
    assert resolve_start_dir() == base

    monkeypatch.setenv("STOR_DIR", str(home))
    assert resolve_start_dir() == home
    assert resolve_start_dir(base / "other") == base / "other"


def test_within_and_relative(repo: Path) -> None:
    """Test containment checks and root-relative rendering."""
    assert is_within(repo / "a" / "b", repo)
    assert is_within(repo, repo)
    assert not is_within(repo.parent, repo)
    assert relative_to_root(repo / "a" / "b", repo) == "a/b"
