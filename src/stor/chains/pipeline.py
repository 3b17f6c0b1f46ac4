"""Reversible operation pipeline.

A Pipeline runs an ordered list of operations. Each operation pairs a forward
action with its compensating action. The first failing step halts the run and
leaves every earlier step applied; the caller then triggers ``revert()``,
which compensates those steps in reverse order and produces an immutable
``PipelineReport`` describing exactly what was and was not undone.
"""

import textwrap
from collections.abc import Sequence
from enum import Enum
from typing import Any, Protocol

import structlog
from pydantic import BaseModel, ConfigDict
from rich.console import Console

from stor.core.errors import IncompleteCleanup

_LABEL_WIDTH = 13


class Operation(Protocol):
    """A named, reversible unit of work."""

    @property
    def name(self) -> str: ...

    @property
    def diagram(self) -> str: ...

    def apply(self) -> None: ...

    def revert(self) -> None: ...


class RevertStatus(str, Enum):
    """Outcome of compensating one step.

    Attributes:
        REVERTED: Compensation ran and succeeded
        REVERT_FAILED: Compensation ran and failed; the walk stopped here
        NOT_ATTEMPTED: Never compensated because an earlier compensation failed
    """

    REVERTED = "reverted"
    REVERT_FAILED = "revert_failed"
    NOT_ATTEMPTED = "not_attempted"


class StepOutcome(BaseModel):
    """Revert outcome of a single step."""

    model_config = ConfigDict(frozen=True)

    index: int
    name: str
    diagram: str
    status: RevertStatus
    error: str | None = None


class PipelineReport(BaseModel):
    """Immutable record of a failed run and its compensation.

    Outcomes are ordered as they were walked: from the step just before the
    failure back to the first step. A failed step that could not clean up
    after itself lists what it left behind in ``leftovers``.
    """

    model_config = ConfigDict(frozen=True)

    command: str | None = None
    failed_index: int
    failed_name: str
    failed_diagram: str
    error: str
    failed_step_clean: bool = True
    cleanup_error: str | None = None
    leftovers: tuple[str, ...] = ()
    outcomes: tuple[StepOutcome, ...] = ()

    @property
    def fully_reverted(self) -> bool:
        if not self.failed_step_clean:
            return False
        return all(o.status is RevertStatus.REVERTED for o in self.outcomes)

    @property
    def headline(self) -> str:
        what = f"{self.command} operation" if self.command else "Operation"
        if self.fully_reverted:
            return f"{self.error}: {what} failed, all changes were reverted"
        return f"{self.error}: {what} failed, some changes could not be reverted"

    def render(self) -> str:
        """Render the multi-line human-readable report."""
        blocks = [self.headline, ""]
        blocks.append(
            _block(
                "[FAILED]",
                self.failed_name,
                self.failed_diagram,
                self.cleanup_error,
                self.leftovers,
            )
        )
        for outcome in self.outcomes:
            if outcome.status is RevertStatus.REVERTED:
                blocks.append(_block("[REVERTED]", outcome.name, outcome.diagram))
            elif outcome.status is RevertStatus.REVERT_FAILED:
                blocks.append(
                    _block("[UNREVERTED]", outcome.name, outcome.diagram, outcome.error)
                )
            else:
                blocks.append(_block("[UNREVERTED]", outcome.name, outcome.diagram))
        return "\n".join(blocks)


def _block(
    label: str,
    name: str,
    diagram: str,
    error: str | None = None,
    leftovers: Sequence[str] = (),
) -> str:
    pad = " " * _LABEL_WIDTH
    lines = [f"{label:<{_LABEL_WIDTH}}{name}"]
    lines.append(textwrap.indent(f"`{diagram}`", pad))
    if error is not None:
        lines.append(textwrap.indent(f"Error: {error}", pad))
    for path in leftovers:
        lines.append(textwrap.indent(f"Left behind: {path}", pad))
    return "\n".join(lines) + "\n"


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class Pipeline:
    """Runs operations in order with explicit, caller-triggered compensation."""

    def __init__(
        self,
        operations: Sequence[Operation],
        *,
        dry_run: bool = False,
        command: str | None = None,
        console: Console | None = None,
        logger: Any = None,
    ) -> None:
        """Initialize pipeline.

        Args:
            operations: Operations to run, in order
            dry_run: If True, only print each diagram and touch nothing
            command: Optional command name used in logs and reports
            console: Optional Rich console for dry-run output
            logger: Optional structlog logger instance
        """
        self.operations = list(operations)
        self.dry_run = dry_run
        self.command = command
        self.failed_index: int | None = None
        self.error: BaseException | None = None
        self.report: PipelineReport | None = None
        self._ui = console or Console()
        self._logger = (logger or structlog.get_logger()).bind(
            command=command, dry_run=dry_run, steps=len(self.operations)
        )

    def apply(self) -> None:
        """Run every operation in order, stopping at the first failure.

        Raises:
            Exception: Whatever the failing operation raised, unchanged
        """
        for i, op in enumerate(self.operations):
            if self.dry_run:
                self._ui.print(
                    op.diagram, markup=False, highlight=False, soft_wrap=True
                )
                self._logger.debug("pipeline.step.previewed", index=i, step=op.name)
                continue

            try:
                op.apply()
            except Exception as e:
                self.failed_index = i
                self.error = e
                self._logger.warning(
                    "pipeline.step.failed", index=i, step=op.name, error=_describe(e)
                )
                raise

            self._logger.debug("pipeline.step.applied", index=i, step=op.name)

        self._logger.info("pipeline.applied")

    def revert(self) -> PipelineReport:
        """Compensate the steps applied before the failure, newest first.

        The walk stops at the first compensation that fails; every step after
        that point is reported as not attempted.

        Returns:
            PipelineReport describing the failure and each step's outcome

        Raises:
            RuntimeError: If ``apply()`` has not failed
        """
        if self.failed_index is None or self.error is None:
            raise RuntimeError("Pipeline has no failed step to revert")
        if self.report is not None:
            return self.report

        outcomes: list[StepOutcome] = []
        halted = False

        for i in range(self.failed_index - 1, -1, -1):
            op = self.operations[i]
            if halted:
                outcomes.append(
                    StepOutcome(
                        index=i,
                        name=op.name,
                        diagram=op.diagram,
                        status=RevertStatus.NOT_ATTEMPTED,
                    )
                )
                continue

            try:
                op.revert()
            except Exception as e:
                halted = True
                outcomes.append(
                    StepOutcome(
                        index=i,
                        name=op.name,
                        diagram=op.diagram,
                        status=RevertStatus.REVERT_FAILED,
                        error=_describe(e),
                    )
                )
                self._logger.error(
                    "pipeline.revert.failed", index=i, step=op.name, error=_describe(e)
                )
                continue

            outcomes.append(
                StepOutcome(
                    index=i,
                    name=op.name,
                    diagram=op.diagram,
                    status=RevertStatus.REVERTED,
                )
            )
            self._logger.debug("pipeline.revert.step", index=i, step=op.name)

        cleanup_error: str | None = None
        leftovers: tuple[str, ...] = ()
        if isinstance(self.error, IncompleteCleanup):
            cleanup_error = self.error.cleanup_error
            leftovers = tuple(self.error.leftovers)
            self._logger.error(
                "pipeline.step.unclean",
                index=self.failed_index,
                leftovers=list(leftovers),
            )

        failed = self.operations[self.failed_index]
        self.report = PipelineReport(
            command=self.command,
            failed_index=self.failed_index,
            failed_name=failed.name,
            failed_diagram=failed.diagram,
            error=_describe(self.error),
            failed_step_clean=cleanup_error is None,
            cleanup_error=cleanup_error,
            leftovers=leftovers,
            outcomes=tuple(outcomes),
        )
        self._logger.info(
            "pipeline.reverted",
            failed_index=self.failed_index,
            fully_reverted=self.report.fully_reverted,
        )
        return self.report
