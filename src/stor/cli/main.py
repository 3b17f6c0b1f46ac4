"""CLI entry point for stor."""

from __future__ import annotations

import importlib
from collections.abc import Sequence
from typing import TYPE_CHECKING, Annotated, Any, NoReturn

if TYPE_CHECKING:  # pragma: no cover - typing only
    import typer
    from typer import Typer as TyperType
else:  # pragma: no cover - runtime fallback for typing
    typer = importlib.import_module("typer")
    TyperType = Any

from rich.console import Console

from stor.core import commands
from stor.core.errors import PartialFailure, StorError
from stor.fs.paths import resolve_start_dir
from stor.utils.logs import configure_logging

app: TyperType = typer.Typer(
    help="Manage your dot files by moving them into a stor repository.",
    no_args_is_help=True,
)


VerboseFlag = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable debug logging on stderr."),
]
DryRunFlag = Annotated[
    bool,
    typer.Option("--dry-run", "-d", help="Print commands rather than running them."),
]
PathArgument = Annotated[
    str,
    typer.Argument(help="Path to track, absolute or relative to the current directory."),
]
DestArgument = Annotated[
    str | None,
    typer.Argument(help="Destination inside the repository. Defaults to PATH's name."),
]
ReleaseArgument = Annotated[
    str,
    typer.Argument(help="Tracked path: the original location or the stored path."),
]


def _fail(exc: Exception) -> NoReturn:
    if isinstance(exc, PartialFailure) and not exc.fully_reverted:
        typer.secho(str(exc), err=True, fg=typer.colors.RED, bold=True)
    else:
        typer.secho(str(exc), err=True, fg=typer.colors.RED)
    raise typer.Exit(code=1) from exc


def main(verbose: VerboseFlag = False) -> None:
    """Manage your dot files by moving them into a stor repository."""

    configure_logging(verbose)


def init_stor() -> None:
    """Initialize a new stor repository in the current directory."""

    cwd = resolve_start_dir()
    try:
        ledger = commands.init_repository(cwd)
    except (StorError, OSError) as exc:
        _fail(exc)
    typer.secho(f"Initialized empty stor repository in {ledger.root}", fg=typer.colors.GREEN)


def track(
    path: PathArgument,
    dest: DestArgument = None,
    dry_run: DryRunFlag = False,
) -> None:
    """Move PATH into the repository and replace it with a symlink."""

    try:
        commands.track(resolve_start_dir(), path, dest, dry_run=dry_run, console=Console())
    except (StorError, OSError) as exc:
        _fail(exc)


def release(path: ReleaseArgument, dry_run: DryRunFlag = False) -> None:
    """Move a tracked path back to its original location."""

    try:
        commands.release(resolve_start_dir(), path, dry_run=dry_run, console=Console())
    except (StorError, OSError) as exc:
        _fail(exc)


def apply_stor(dry_run: DryRunFlag = False) -> None:
    """Create the symlinks for every tracked entry not linked yet."""

    try:
        commands.apply(resolve_start_dir(), dry_run=dry_run, console=Console())
    except (StorError, OSError) as exc:
        _fail(exc)


def list_entries() -> None:
    """List tracked entries and whether each is linked."""

    try:
        rows = commands.status(resolve_start_dir())
    except (StorError, OSError) as exc:
        _fail(exc)

    for entry, linked in rows:
        state = "linked" if linked else "unlinked"
        color = typer.colors.GREEN if linked else typer.colors.YELLOW
        typer.secho(f"{state:<9}", fg=color, nl=False)
        typer.echo(f" {entry.symlink} <- {entry.target}")


def run_cli(args: Sequence[str] | None = None) -> None:
    app(args=args)


app.callback()(main)
app.command("init")(init_stor)
app.command("track")(track)
app.command("release")(release)
app.command("apply")(apply_stor)
app.command("list")(list_entries)
