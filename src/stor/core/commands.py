"""Command handlers for stor.

Each handler validates its preconditions, builds the ordered list of
operations for the command and runs them through a Pipeline. When a step
fails, the already-applied steps are reverted and a PartialFailure carrying
the revert report is raised.
"""

import os
from collections.abc import Sequence
from pathlib import Path

import structlog
from rich.console import Console

from stor.chains.pipeline import Operation, Pipeline
from stor.core.errors import (
    AlreadyRepository,
    DuplicateEntry,
    NestedRepositoryForbidden,
    NotFound,
    PartialFailure,
    PreconditionFailed,
)
from stor.fs.fs_ops import (
    ApplyMissingOp,
    LinkOp,
    MoveOp,
    PreApplyScanOp,
    RemoveEntryOp,
    SaveEntryOp,
    UnlinkOp,
    is_linked,
    stored_path,
)
from stor.fs.ledger import Entry, Ledger
from stor.fs.paths import (
    absolute_path,
    find_parent_root,
    find_root,
    is_repository,
    is_within,
    relative_to_root,
    symlinked_ancestor,
)

logger = structlog.get_logger()


def _refuse(subject: Path | str, reason: str) -> PreconditionFailed:
    return PreconditionFailed([(str(subject), reason)])


def _execute(
    command: str,
    operations: Sequence[Operation],
    *,
    dry_run: bool,
    console: Console | None,
) -> Pipeline:
    pipeline = Pipeline(operations, dry_run=dry_run, command=command, console=console)
    try:
        pipeline.apply()
    except Exception as e:
        report = pipeline.revert()
        raise PartialFailure(report) from e
    return pipeline


def init_repository(cwd: Path) -> Ledger:
    """Mark ``cwd`` as a stor repository by creating an empty ledger.

    Raises:
        AlreadyRepository: If ``cwd`` already holds a ledger
        NestedRepositoryForbidden: If an ancestor of ``cwd`` is a repository
    """
    if is_repository(cwd):
        raise AlreadyRepository(str(cwd))

    parent = find_parent_root(cwd)
    if parent is not None:
        raise NestedRepositoryForbidden(str(cwd), str(parent))

    try:
        ledger = Ledger.create(cwd)
    except FileExistsError as e:
        raise AlreadyRepository(str(cwd)) from e

    logger.info("command.init", root=str(cwd))
    return ledger


def track(
    cwd: Path,
    path: str,
    dest: str | None = None,
    *,
    dry_run: bool = False,
    console: Console | None = None,
) -> Pipeline:
    """Move ``path`` into the repository and leave a symlink in its place.

    Args:
        cwd: Directory the command runs from
        path: Path to track, relative to ``cwd`` or absolute
        dest: Optional destination inside the repository, relative to ``cwd``
        dry_run: Print the operations instead of running them
        console: Optional Rich console for dry-run output

    Returns:
        The pipeline that was run
    """
    root = find_root(cwd)
    ledger = Ledger(root)
    target = absolute_path(path, cwd)

    linked = symlinked_ancestor(target)
    if linked == target:
        raise _refuse(target, f"Cannot track symlink '{target}' in stor")
    if linked is not None:
        raise _refuse(target, f"Cannot track the child of symlink '{linked}' in stor")
    if not os.path.lexists(target):
        raise _refuse(target, f"Target '{target}' does not exist")
    if is_within(root, target):
        raise _refuse(target, "Cannot track the stor repository or one of its parents")
    if is_within(target, root):
        raise _refuse(target, "Cannot track a path that is already inside the stor repository")

    dst = absolute_path(dest, cwd) if dest else root / target.name
    if dst == root or not is_within(dst, root):
        raise _refuse(dst, f"Destination '{dst}' is not inside the stor repository")
    if os.path.lexists(dst):
        raise _refuse(
            dst,
            f"Destination '{dst}' already exists please provide an alternative "
            "destination path",
        )
    if not dst.parent.is_dir():
        raise _refuse(dst, f"Destination directory '{dst.parent}' does not exist")

    symlink = relative_to_root(dst, root)
    for entry in ledger.tracked():
        if str(target) in (entry.target, entry.symlink):
            raise DuplicateEntry("target", str(target))
        if symlink in (entry.target, entry.symlink):
            raise DuplicateEntry("symlink", symlink)

    logger.info("command.track", root=str(root), target=str(target), symlink=symlink)
    return _execute(
        "track",
        [
            MoveOp(target, dst),
            LinkOp(link=target, points_to=dst),
            SaveEntryOp(ledger, str(target), symlink),
        ],
        dry_run=dry_run,
        console=console,
    )


def lookup(ledger: Ledger, cwd: Path, path: str) -> Entry:
    """Find the entry for ``path`` given as typed, absolute or repo-relative.

    Raises:
        NotFound: If no spelling of ``path`` is tracked
    """
    absolute = absolute_path(path, cwd)
    candidates = [path, str(absolute)]
    if absolute != ledger.root and is_within(absolute, ledger.root):
        candidates.append(relative_to_root(absolute, ledger.root))

    for candidate in dict.fromkeys(candidates):
        try:
            return ledger.find(candidate)
        except NotFound:
            continue
    raise NotFound(path)


def release(
    cwd: Path,
    path: str,
    *,
    dry_run: bool = False,
    console: Console | None = None,
) -> Pipeline:
    """Put a tracked path back in its original location and forget it.

    Returns:
        The pipeline that was run
    """
    root = find_root(cwd)
    ledger = Ledger(root)
    entry = lookup(ledger, cwd, path)

    target = Path(entry.target or "")
    stored = stored_path(root, entry)
    if not is_linked(root, entry):
        raise _refuse(
            entry.to_line(), f"Target '{target}' is not a symlink to '{stored}'"
        )

    logger.info("command.release", root=str(root), target=str(target))
    return _execute(
        "release",
        [
            UnlinkOp(link=target, points_to=Path(os.readlink(target))),
            MoveOp(
                stored,
                target,
                name="Move stored content back to its original location",
            ),
            RemoveEntryOp(ledger, entry),
        ],
        dry_run=dry_run,
        console=console,
    )


def apply(
    cwd: Path,
    *,
    dry_run: bool = False,
    console: Console | None = None,
) -> Pipeline:
    """Link every ledger entry that is not linked in this environment yet.

    Returns:
        The pipeline that was run
    """
    root = find_root(cwd)
    entries = tuple(Ledger(root).tracked())

    scan = PreApplyScanOp(root, entries)
    if dry_run:
        # Read-only; previews report the same conflicts as a real run
        scan.apply()

    logger.info("command.apply", root=str(root), entries=len(entries))
    return _execute(
        "apply",
        [scan, ApplyMissingOp(root, entries)],
        dry_run=dry_run,
        console=console,
    )


def status(cwd: Path) -> list[tuple[Entry, bool]]:
    """List tracked entries with whether each is linked here."""
    root = find_root(cwd)
    return [(entry, is_linked(root, entry)) for entry in Ledger(root).tracked()]
