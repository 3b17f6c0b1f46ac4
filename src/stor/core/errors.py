"""Custom exceptions for stor.

Every error raised by the ledger, the pipeline and the command handlers
derives from ``StorError`` and carries a message suitable for direct display.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover - typing only
    from stor.chains.pipeline import PipelineReport


class StorError(Exception):
    """Base exception for all stor errors."""

    code = "stor_error"

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dictionary for structured output."""
        return {"error": self.code, "message": str(self)}


class NotRepository(StorError):
    """Raised when no ledger is found at or above the starting directory."""

    code = "not_repository"

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Not inside a stor repository: {path}")


class AlreadyRepository(StorError):
    """Raised when initializing a directory that already holds a ledger."""

    code = "already_repository"

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Directory is already a stor repository: {path}")


class NestedRepositoryForbidden(StorError):
    """Raised when initializing a repository beneath an existing one."""

    code = "nested_repository_forbidden"

    def __init__(self, path: str, parent: str) -> None:
        self.path = path
        self.parent = parent
        super().__init__(
            f"Cannot create a stor repository at {path} inside repository {parent}"
        )


class DuplicateEntry(StorError):
    """Raised when a target or symlink is already recorded in the ledger.

    Attributes:
        field: Which incoming value collided ('target' or 'symlink')
        value: The colliding path
    """

    code = "duplicate_entry"

    def __init__(self, field: str, value: str) -> None:
        self.field = field
        self.value = value
        super().__init__(f"{field.capitalize()} already exists in the ledger: {value}")

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "field": self.field, "value": self.value}


class NotFound(StorError):
    """Raised when no tracked entry matches a path."""

    code = "not_found"

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Path not found in the ledger: {path}")

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "path": self.path}


class ParseError(StorError):
    """Raised when a ledger line is neither a comment nor a valid record.

    Attributes:
        line: 1-based line number of the offending line
    """

    code = "parse_error"

    def __init__(self, line: int, detail: str | None = None) -> None:
        self.line = line
        self.detail = detail

        message = f"Invalid line in ledger: {line}"
        if detail:
            message += f" ({detail})"

        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "line": self.line}

    def __repr__(self) -> str:
        return f"ParseError(line={self.line!r}, detail={self.detail!r})"


class PreconditionFailed(StorError):
    """Raised when one or more preconditions of a command do not hold.

    Attributes:
        problems: Ordered (subject, reason) pairs, one per offending item
    """

    code = "precondition_failed"

    def __init__(
        self, problems: list[tuple[str, str]], headline: str | None = None
    ) -> None:
        self.problems = problems
        self.headline = headline

        if headline is None and len(problems) == 1:
            message = problems[0][1]
        else:
            blocks = [f"{subject}\n{reason}" for subject, reason in problems]
            message = (headline or "Preconditions failed") + ":\n\n"
            message += "\n\n".join(blocks)

        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "problems": [
                {"subject": subject, "reason": reason}
                for subject, reason in self.problems
            ],
        }

    def __repr__(self) -> str:
        return f"PreconditionFailed(problems={len(self.problems)})"


class PartialFailure(StorError):
    """Raised when a pipeline failed part-way and compensation was attempted.

    Attributes:
        report: Immutable report of the failed step and every revert outcome
    """

    code = "partial_failure"

    def __init__(self, report: PipelineReport) -> None:
        self.report = report
        super().__init__(report.render())

    @property
    def fully_reverted(self) -> bool:
        return self.report.fully_reverted

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "report": self.report.model_dump(mode="json"),
        }

    def __repr__(self) -> str:
        return (
            f"PartialFailure(failed_index={self.report.failed_index!r}, "
            f"fully_reverted={self.report.fully_reverted!r})"
        )


class StorIOError(StorError):
    """Raised when the ledger cannot be read or written.

    The underlying ``OSError`` is chained as ``__cause__``.
    """

    code = "io_error"



class IncompleteCleanup(StorError):
    """Raised when a failing operation could not undo its own partial work.

    The message is the original failure, which is also chained as
    ``__cause__``.

    Attributes:
        leftovers: Paths the operation created and could not remove
        cleanup_error: Why the cleanup failed
    """

    code = "incomplete_cleanup"

    def __init__(
        self, error: BaseException, leftovers: list[str], cleanup_error: str
    ) -> None:
        self.leftovers = leftovers
        self.cleanup_error = cleanup_error
        super().__init__(str(error) or type(error).__name__)

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "leftovers": list(self.leftovers),
            "cleanup_error": self.cleanup_error,
        }
