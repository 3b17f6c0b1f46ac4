"""Tests for core custom exceptions."""

from stor.chains.pipeline import PipelineReport, RevertStatus, StepOutcome
from stor.core.errors import (
    DuplicateEntry,
    IncompleteCleanup,
    NestedRepositoryForbidden,
    NotFound,
    NotRepository,
    ParseError,
    PartialFailure,
    PreconditionFailed,
    StorError,
    StorIOError,
)


def test_all_errors_share_a_base() -> None:
    """Test that every error can be caught as StorError."""
    for exc in (
        NotRepository("/x"),
        NestedRepositoryForbidden("/x/y", "/x"),
        DuplicateEntry("target", "/x"),
        NotFound("/x"),
        ParseError(3),
        PreconditionFailed([("/x", "bad")]),
        StorIOError("disk"),
        IncompleteCleanup(OSError("denied"), ["/a"], "busy"),
    ):
        assert isinstance(exc, StorError)
        assert exc.to_dict()["message"] == str(exc)


def test_parse_error_carries_line() -> None:
    """Test ParseError message and fields."""
    exc = ParseError(12, "expected 2 fields, found 3")

    assert exc.line == 12
    assert str(exc) == "Invalid line in ledger: 12 (expected 2 fields, found 3)"
    assert exc.to_dict()["line"] == 12
    assert exc.to_dict()["error"] == "parse_error"


def test_duplicate_entry_to_dict() -> None:
    """Test DuplicateEntry message and dictionary form."""
    exc = DuplicateEntry("symlink", "vimrc")

    assert str(exc) == "Symlink already exists in the ledger: vimrc"
    assert exc.to_dict() == {
        "error": "duplicate_entry",
        "message": str(exc),
        "field": "symlink",
        "value": "vimrc",
    }


def test_precondition_failed_single_problem_is_just_the_reason() -> None:
    """Test the compact message for one problem."""
    exc = PreconditionFailed([("/x", "Target '/x' does not exist")])

    assert str(exc) == "Target '/x' does not exist"


def test_precondition_failed_lists_every_problem() -> None:
    """Test the combined message for many problems."""
    exc = PreconditionFailed(
        [('"a" => "/a"', "destination exists"), ('"b" => "/b"', "missing")],
        headline="Could not apply stor",
    )

    message = str(exc)
    assert message.startswith("Could not apply stor:\n\n")
    assert '"a" => "/a"\ndestination exists' in message
    assert '"b" => "/b"\nmissing' in message
    assert [p["reason"] for p in exc.to_dict()["problems"]] == [
        "destination exists",
        "missing",
    ]


def test_partial_failure_wraps_report() -> None:
    """Test PartialFailure exposes the report and renders it as its message."""
    report = PipelineReport(
        command="release",
        failed_index=1,
        failed_name="Move back",
        failed_diagram="mv a b",
        error="denied",
        outcomes=(
            StepOutcome(
                index=0,
                name="Remove symlink",
                diagram="rm b",
                status=RevertStatus.REVERT_FAILED,
                error="busy",
            ),
        ),
    )

    exc = PartialFailure(report)

    assert not exc.fully_reverted
    assert str(exc) == report.render()
    assert "some changes could not be reverted" in str(exc)
    data = exc.to_dict()
    assert data["error"] == "partial_failure"
    assert data["report"]["outcomes"][0]["status"] == "revert_failed"
    assert "fully_reverted=False" in repr(exc)


def test_incomplete_cleanup_keeps_original_message() -> None:
    """Test that the original failure is the message and leftovers are listed."""
    exc = IncompleteCleanup(PermissionError("denied"), ["/home/me/a"], "busy")

    assert str(exc) == "denied"
    assert exc.to_dict() == {
        "error": "incomplete_cleanup",
        "message": "denied",
        "leftovers": ["/home/me/a"],
        "cleanup_error": "busy",
    }
