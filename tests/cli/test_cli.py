"""CLI tests for the stor commands."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from stor.cli.main import app

runner = CliRunner()


@pytest.fixture
def in_repo(monkeypatch: pytest.MonkeyPatch, repo: Path) -> Path:
    monkeypatch.chdir(repo)
    return repo


def test_init_creates_ledger(monkeypatch: pytest.MonkeyPatch, base: Path) -> None:
    monkeypatch.chdir(base)

    result = runner.invoke(app, ["init"])

    assert result.exit_code == 0
    assert "Initialized empty stor repository" in result.stdout
    assert (base / ".stor").is_file()


def test_init_twice_fails(in_repo: Path) -> None:
    result = runner.invoke(app, ["init"])

    assert result.exit_code == 1
    assert "already a stor repository" in result.output


def test_track_list_release(in_repo: Path, home: Path) -> None:
    (home / ".vimrc").write_text("set number")

    tracked = runner.invoke(app, ["track", str(home / ".vimrc")])
    listed = runner.invoke(app, ["list"])
    released = runner.invoke(app, ["release", ".vimrc"])

    assert tracked.exit_code == 0
    assert "linked" in listed.stdout
    assert f".vimrc <- {home / '.vimrc'}" in listed.stdout
    assert released.exit_code == 0
    assert (home / ".vimrc").read_text() == "set number"
    assert not (home / ".vimrc").is_symlink()


def test_track_dry_run_prints_plan(in_repo: Path, home: Path) -> None:
    (home / ".vimrc").write_text("x")

    result = runner.invoke(app, ["track", "--dry-run", str(home / ".vimrc")])

    assert result.exit_code == 0
    assert f"mv {home / '.vimrc'} {in_repo / '.vimrc'}" in result.stdout
    assert not (home / ".vimrc").is_symlink()
    assert (in_repo / ".stor").read_text() == ""


def test_stor_dir_env_selects_repository(
    monkeypatch: pytest.MonkeyPatch, repo: Path, home: Path
) -> None:
    monkeypatch.chdir(home)
    monkeypatch.setenv("STOR_DIR", str(repo))
    (home / "a").write_text("x")

    result = runner.invoke(app, ["track", str(home / "a")])

    assert result.exit_code == 0
    assert (repo / "a").read_text() == "x"


def test_errors_exit_nonzero(monkeypatch: pytest.MonkeyPatch, home: Path) -> None:
    monkeypatch.chdir(home)

    result = runner.invoke(app, ["apply"])

    assert result.exit_code == 1
    assert "Not inside a stor repository" in result.output


def test_apply_reports_scan_problems(in_repo: Path, home: Path) -> None:
    (in_repo / ".stor").write_text(f'"gone" => "{home / "gone"}"\n')

    result = runner.invoke(app, ["apply"])

    assert result.exit_code == 1
    assert "does not exist" in result.output
    assert "[FAILED]" in result.output


def test_parse_error_is_reported(in_repo: Path) -> None:
    (in_repo / ".stor").write_text("not a record\n")

    result = runner.invoke(app, ["list"])

    assert result.exit_code == 1
    assert "Invalid line in ledger: 1" in result.output


def test_list_reads_comments_in_other_encodings(in_repo: Path, home: Path) -> None:
    record = b'"a" => "' + bytes(home / "a") + b'"\n'
    (in_repo / ".stor").write_bytes(b"# caf\xe9\n" + record)

    result = runner.invoke(app, ["list"])

    assert result.exit_code == 0
    assert f"a <- {home / 'a'}" in result.stdout
