"""Filesystem and ledger operations with compensation.

This package provides the flat-file ledger of tracked paths, the reversible
operations that move, link and record them, and the path helpers used to
find repositories and refuse symlinked trees.
"""

from stor.fs.fs_ops import (
    ApplyMissingOp,
    LinkOp,
    MoveOp,
    PreApplyScanOp,
    RemoveEntryOp,
    SaveEntryOp,
    UnlinkOp,
)
from stor.fs.ledger import Entry, Ledger
from stor.fs.paths import find_root, symlinked_ancestor

__all__ = [
    "ApplyMissingOp",
    "Entry",
    "Ledger",
    "LinkOp",
    "MoveOp",
    "PreApplyScanOp",
    "RemoveEntryOp",
    "SaveEntryOp",
    "UnlinkOp",
    "find_root",
    "symlinked_ancestor",
]
