"""Pytest configuration and fixtures for stor tests."""

from pathlib import Path

import pytest

from stor.fs.ledger import Ledger
from stor.utils.logs import configure_logging


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Isolate tests from the caller's STOR_* variables and logging state."""
    monkeypatch.delenv("STOR_DEBUG", raising=False)
    monkeypatch.delenv("STOR_DIR", raising=False)
    configure_logging()


@pytest.fixture
def base(tmp_path: Path) -> Path:
    """Symlink-free temporary directory (macOS puts tmp under /private)."""
    return tmp_path.resolve()


@pytest.fixture
def repo(base: Path) -> Path:
    """An initialized, empty stor repository."""
    root = base / "repo"
    root.mkdir()
    Ledger.create(root)
    return root


@pytest.fixture
def ledger(repo: Path) -> Ledger:
    return Ledger(repo)


@pytest.fixture
def home(base: Path) -> Path:
    """A directory outside the repository holding files to track."""
    path = base / "home"
    path.mkdir()
    return path


def snapshot(*roots: Path) -> dict[str, object]:
    """Capture every path under ``roots`` with its kind and content."""
    state: dict[str, object] = {}
    for root in roots:
        for path in sorted(root.rglob("*")):
            if path.is_symlink():
                state[str(path)] = ("link", str(path.readlink()))
            elif path.is_file():
                state[str(path)] = ("file", path.read_bytes())
            else:
                state[str(path)] = ("dir", None)
    return state


@pytest.fixture
def tree_snapshot():
    return snapshot
