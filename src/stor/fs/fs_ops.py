"""Reversible filesystem and ledger operations.

Each operation is a small dataclass holding its own parameters and exposing
``name``, ``diagram``, ``apply()`` and ``revert()``. The forward and
compensating actions of every operation are inverses of each other, so a
Pipeline can undo any applied prefix of a command.
"""

import errno
import os
import shlex
import shutil
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from stor.core.constants import SEPARATOR
from stor.core.errors import IncompleteCleanup, PreconditionFailed, StorIOError
from stor.fs.ledger import Entry, Ledger, quote
from stor.fs.paths import absolute_path

logger = structlog.get_logger()


def _sh(path: Path | str) -> str:
    return shlex.quote(str(path))


def _rename(src: Path, dst: Path) -> None:
    """Rename ``src`` to ``dst``, refusing to clobber an existing path."""
    if os.path.lexists(dst):
        raise FileExistsError(errno.EEXIST, "Destination already exists", str(dst))

    try:
        os.rename(src, dst)
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise
        # Cross-device move: copy then remove the source
        shutil.move(str(src), str(dst))
        logger.debug("fs.cross_device_move", src=str(src), dst=str(dst))


def _remove_symlink(path: Path) -> None:
    """Remove ``path`` only if it is a symlink."""
    if not path.is_symlink():
        if os.path.lexists(path):
            raise OSError(errno.EINVAL, "Refusing to remove a non-symlink", str(path))
        raise FileNotFoundError(errno.ENOENT, "No such symlink", str(path))
    path.unlink()


def stored_path(root: Path, entry: Entry) -> Path:
    """Absolute location of an entry's content inside the repository."""
    return absolute_path(root / (entry.symlink or ""))


def is_linked(root: Path, entry: Entry) -> bool:
    """Check whether an entry's target is a symlink to its stored content."""
    target = Path(entry.target or "")
    if not target.is_symlink():
        return False
    points_to = absolute_path(os.readlink(target), target.parent)
    return points_to == stored_path(root, entry)


def scan_problem(root: Path, entry: Entry) -> str | None:
    """Explain why ``entry`` cannot be linked, or None if it is fine.

    Entries that are already correctly linked are never a problem.
    """
    if is_linked(root, entry):
        return None

    stored = stored_path(root, entry)
    target = Path(entry.target or "")

    if not os.path.lexists(stored):
        return f"stored path {quote(str(stored))} does not exist"
    if stored.is_symlink():
        return f"stored path {quote(str(stored))} is a symlink"
    if os.path.lexists(target):
        return f"destination {quote(str(target))} already exists"
    return None


@dataclass(frozen=True)
class MoveOp:
    """Rename ``src`` to ``dst``; compensate by renaming back."""

    src: Path
    dst: Path
    name: str = "Move target into the stor repository"

    @property
    def diagram(self) -> str:
        return f"mv {_sh(self.src)} {_sh(self.dst)}"

    def apply(self) -> None:
        _rename(self.src, self.dst)

    def revert(self) -> None:
        _rename(self.dst, self.src)


@dataclass(frozen=True)
class LinkOp:
    """Create a symlink at ``link`` pointing to ``points_to``."""

    link: Path
    points_to: Path
    name: str = "Symlink stored content to its original location"

    @property
    def diagram(self) -> str:
        return f"ln -s {_sh(self.points_to)} {_sh(self.link)}"

    def apply(self) -> None:
        os.symlink(self.points_to, self.link)

    def revert(self) -> None:
        _remove_symlink(self.link)


@dataclass(frozen=True)
class UnlinkOp:
    """Remove the symlink at ``link``; compensate by recreating it."""

    link: Path
    points_to: Path
    name: str = "Remove symlink"

    @property
    def diagram(self) -> str:
        return f"rm {_sh(self.link)}"

    def apply(self) -> None:
        _remove_symlink(self.link)

    def revert(self) -> None:
        os.symlink(self.points_to, self.link)


@dataclass(frozen=True)
class SaveEntryOp:
    """Append a record to the ledger; compensate by removing it."""

    ledger: Ledger
    target: str
    symlink: str
    name: str = "Save the path pair to the stor ledger"

    @property
    def diagram(self) -> str:
        return f"stor save {quote(self.symlink)} {SEPARATOR} {quote(self.target)}"

    def apply(self) -> None:
        self.ledger.store(self.target, self.symlink)

    def revert(self) -> None:
        self.ledger.remove(self.symlink)


@dataclass(frozen=True)
class RemoveEntryOp:
    """Remove a record from the ledger; compensate by re-appending it."""

    ledger: Ledger
    entry: Entry
    name: str = "Remove the path pair from the stor ledger"

    @property
    def diagram(self) -> str:
        return (
            f"stor delete {quote(self.entry.symlink or '')} "
            f"{SEPARATOR} {quote(self.entry.target or '')}"
        )

    def apply(self) -> None:
        self.ledger.remove(self.entry.symlink or "")

    def revert(self) -> None:
        self.ledger.store(self.entry.target or "", self.entry.symlink or "")


@dataclass(frozen=True)
class PreApplyScanOp:
    """Check every ledger entry is linked or safely linkable.

    Fails with a single PreconditionFailed listing every offending entry.
    Nothing is mutated, so compensation is a no-op.
    """

    root: Path
    entries: tuple[Entry, ...]
    name: str = "Scan the local environment to ensure the stor can be applied"

    @property
    def diagram(self) -> str:
        checks = []
        for entry in self.entries:
            if entry.is_comment:
                continue
            target = _sh(entry.target or "")
            stored = _sh(stored_path(self.root, entry))
            checks.append(
                f"( $(readlink {target}) = {stored} )\n"
                f"        || ( -e {stored} && ! -L {stored} && ! -e {target} )"
            )
        return "[[\n    " + "\n    && ".join(checks) + "\n]]"

    def apply(self) -> None:
        problems: list[tuple[str, str]] = []
        for entry in self.entries:
            if entry.is_comment:
                continue
            reason = scan_problem(self.root, entry)
            if reason is not None:
                problems.append((entry.to_line(), reason))

        if problems:
            raise PreconditionFailed(problems, headline="Could not apply stor")

    def revert(self) -> None:
        return None


@dataclass
class ApplyMissingOp:
    """Link every tracked entry that is not linked yet.

    Records which links it created so compensation removes only those.
    """

    root: Path
    entries: tuple[Entry, ...]
    name: str = "Apply missing stor entries to your environment"
    created: list[Path] = field(default_factory=list, init=False)

    @property
    def diagram(self) -> str:
        lines = [
            f"ln -s {_sh(stored_path(self.root, entry))} {_sh(entry.target or '')}"
            for entry in self.entries
            if not entry.is_comment
        ]
        return "\n".join(lines)

    def apply(self) -> None:
        try:
            for entry in self.entries:
                if entry.is_comment or is_linked(self.root, entry):
                    continue
                target = Path(entry.target or "")
                os.symlink(stored_path(self.root, entry), target)
                self.created.append(target)
                logger.debug("fs.linked", target=str(target))
        except Exception as e:
            # A failed step is not compensated by the pipeline.
            try:
                self.revert()
            except StorIOError as cleanup:
                raise IncompleteCleanup(
                    e, [str(link) for link in self.created], str(cleanup)
                ) from e
            raise

    def revert(self) -> None:
        errors: list[str] = []
        remaining: list[Path] = []

        for link in reversed(self.created):
            try:
                _remove_symlink(link)
            except OSError as e:
                errors.append(f"{link}: {e}")
                remaining.append(link)

        self.created = list(reversed(remaining))
        if errors:
            raise StorIOError(
                f"Could not remove {len(errors)} created symlink(s):\n"
                + "\n".join(errors)
            )
