"""Flat-file ledger of tracked target/symlink pairs.

The ledger lives in a ``.stor`` file at the repository root. Each line is
either an opaque comment (empty, or starting with ``#``) or a record::

    "<symlink>" => "<target>"

Fields are JSON-quoted so any path content round-trips, including the
separator token, quotes, whitespace, line breaks and undecodable file name
bytes. The file is read and written with ``surrogateescape`` so comment lines
in any encoding pass through byte for byte.
"""

import json
import os
import re
import tempfile
from pathlib import Path

import structlog
from pydantic import BaseModel, ConfigDict, Field, model_validator

from stor.core.constants import COMMENT_PREFIX, LEDGER_FILENAME, SEPARATOR
from stor.core.errors import DuplicateEntry, NotFound, ParseError, StorIOError

logger = structlog.get_logger()

_DECODER = json.JSONDecoder()
_SURROGATE = re.compile("[\ud800-\udfff]")
_ERRORS = "surrogateescape"


class Entry(BaseModel):
    """One ledger line: a tracked pair or a comment, never both.

    Attributes:
        target: Absolute path of the original file before relocation
        symlink: Path, relative to the repository root, where content lives
        comment: Raw text of a comment or empty line
        raw: Line text as read from disk, re-emitted verbatim on rewrite
    """

    model_config = ConfigDict(frozen=True)

    target: str | None = None
    symlink: str | None = None
    comment: str | None = None
    raw: str | None = Field(default=None, repr=False, exclude=True)

    @model_validator(mode="after")
    def validate_kind(self) -> "Entry":
        if self.comment is not None:
            if self.target is not None or self.symlink is not None:
                raise ValueError("comment entries cannot carry a target or symlink")
            return self
        if not self.target or not self.symlink:
            raise ValueError("tracked entries need a non-empty target and symlink")
        return self

    @property
    def is_comment(self) -> bool:
        return self.comment is not None

    def to_line(self) -> str:
        """Render the entry as a ledger line without the trailing newline."""
        if self.comment is not None:
            return self.comment
        if self.raw is not None:
            return self.raw
        return format_line(self.target or "", self.symlink or "")

    def __str__(self) -> str:
        return self.to_line()


def quote(value: str) -> str:
    # Lone surrogates (undecodable file name bytes) are written as \uXXXX
    text = json.dumps(value, ensure_ascii=False)
    return _SURROGATE.sub(lambda m: f"\\u{ord(m.group()):04x}", text)


def format_line(target: str, symlink: str) -> str:
    """Format a record line. The symlink field comes first."""
    return f"{quote(symlink)} {SEPARATOR} {quote(target)}"


def parse_line(line: str, lineno: int) -> Entry:
    """Parse a single ledger line.

    Args:
        line: Line text without its line terminator
        lineno: 1-based line number, used in errors

    Returns:
        A comment Entry or a tracked Entry

    Raises:
        ParseError: If the line is not exactly two quoted fields
    """
    if not line or line.startswith(COMMENT_PREFIX):
        return Entry(comment=line, raw=line)

    fields = _split_fields(line, lineno)
    if len(fields) != 2:
        raise ParseError(lineno, f"expected 2 fields, found {len(fields)}")

    symlink, target = fields
    if not symlink or not target:
        raise ParseError(lineno, "empty field")

    return Entry(target=target, symlink=symlink, raw=line)


def parse(text: str) -> list[Entry]:
    """Parse full ledger text. Aborts on the first invalid line."""
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [parse_line(line, i) for i, line in enumerate(lines, start=1)]


def _skip_ws(line: str, pos: int) -> int:
    while pos < len(line) and line[pos].isspace():
        pos += 1
    return pos


def _split_fields(line: str, lineno: int) -> list[str]:
    # Separators are only recognised between quoted fields, never inside one.
    fields: list[str] = []
    pos = 0
    while True:
        pos = _skip_ws(line, pos)
        if not line.startswith('"', pos):
            raise ParseError(lineno, "expected a quoted field")
        try:
            value, pos = _DECODER.raw_decode(line, pos)
        except json.JSONDecodeError as e:
            raise ParseError(lineno, "malformed quoted field") from e
        fields.append(value)

        pos = _skip_ws(line, pos)
        if pos == len(line):
            return fields
        if not line.startswith(SEPARATOR, pos):
            raise ParseError(lineno, f"expected {SEPARATOR!r} between fields")
        pos += len(SEPARATOR)


class Ledger:
    """Handle on the ledger file of one repository.

    Every mutation is a full read followed by a write. Appends go straight to
    the end of the file; removals rewrite it through a temporary file that is
    atomically swapped in. There is no inter-process locking.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.path = self.root / LEDGER_FILENAME
        self._logger = logger.bind(ledger=str(self.path))

    @classmethod
    def create(cls, root: Path) -> "Ledger":
        """Create an empty ledger file in ``root``.

        Raises:
            FileExistsError: If the ledger already exists
            StorIOError: If the file cannot be created
        """
        ledger = cls(root)
        try:
            with open(ledger.path, "x", encoding="utf-8"):
                pass
        except FileExistsError:
            raise
        except OSError as e:
            raise StorIOError(
                f"Failed to create ledger {ledger.path}: {e}. "
                "Perhaps you don't have write permissions for this directory."
            ) from e

        ledger._logger.info("ledger.created")
        return ledger

    def exists(self) -> bool:
        return self.path.is_file()

    def read(self) -> list[Entry]:
        """Read every entry, comments included, in file order."""
        return parse(self._read_text())

    def tracked(self) -> list[Entry]:
        return [entry for entry in self.read() if not entry.is_comment]

    def find(self, path: str) -> Entry:
        """Return the first tracked entry whose target or symlink is ``path``.

        Raises:
            NotFound: If no tracked entry matches
        """
        for entry in self.tracked():
            if path in (entry.target, entry.symlink):
                return entry
        raise NotFound(path)

    def store(self, target: str, symlink: str) -> Entry:
        """Append a new record.

        Raises:
            DuplicateEntry: If either path is already recorded
        """
        if not target or not symlink:
            raise ValueError("target and symlink must be non-empty")

        text = self._read_text()
        for entry in parse(text):
            if entry.is_comment:
                continue
            if target in (entry.target, entry.symlink):
                raise DuplicateEntry("target", target)
            if symlink in (entry.target, entry.symlink):
                raise DuplicateEntry("symlink", symlink)

        entry = Entry(target=target, symlink=symlink)
        prefix = "\n" if text and not text.endswith("\n") else ""
        try:
            with open(
                self.path, "a", encoding="utf-8", errors=_ERRORS, newline="\n"
            ) as fh:
                fh.write(prefix + entry.to_line() + "\n")
        except OSError as e:
            raise StorIOError(f"Could not write ledger {self.path}: {e}") from e

        self._logger.debug("ledger.stored", target=target, symlink=symlink)
        return entry

    def remove(self, symlink: str) -> Entry:
        """Rewrite the ledger without the entry whose symlink is ``symlink``.

        Raises:
            NotFound: If no tracked entry has that symlink
        """
        removed: Entry | None = None
        lines: list[str] = []

        for entry in self.read():
            if removed is None and not entry.is_comment and entry.symlink == symlink:
                removed = entry
                continue
            lines.append(entry.to_line() + "\n")

        if removed is None:
            raise NotFound(symlink)

        self._replace("".join(lines))
        self._logger.debug("ledger.removed", target=removed.target, symlink=symlink)
        return removed

    def _read_text(self) -> str:
        try:
            return self.path.read_text(encoding="utf-8", errors=_ERRORS)
        except OSError as e:
            raise StorIOError(f"Could not read ledger {self.path}: {e}") from e

    def _replace(self, content: str) -> None:
        """Atomically replace the ledger with ``content``."""
        fd, tmp_name = tempfile.mkstemp(
            prefix=f"{LEDGER_FILENAME}.", suffix=".tmp", dir=self.root
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(
                fd, "w", encoding="utf-8", errors=_ERRORS, newline="\n"
            ) as fh:
                fh.write(content)
                fh.flush()
                os.fsync(fh.fileno())
            os.chmod(tmp_path, self.path.stat().st_mode & 0o7777)
            os.replace(tmp_path, self.path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise StorIOError(f"Could not rewrite ledger {self.path}: {e}") from e
