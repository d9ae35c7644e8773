"""
Workflow Execution Context.

Holds the state of one execution of a workflow: overall status, position,
the artifact flowing between steps, and one StepResult per executed step.
The context is carried across retries and resumptions so that outputs of
completed steps are never recomputed.

Only the executor should call the mutators (begin_step, complete_step, ...);
hosts read state through the accessors.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .artifact import Artifact
from .errors import InvalidTransitionError
from .models import ErrorInfo, StepResult, StepStatus, WorkflowStatus, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContextSnapshot:
    """Read-only view of a context at one point in time."""
    workflow_id: str
    status: WorkflowStatus
    current_step_index: int
    started_at: datetime | None
    completed_at: datetime | None
    result_count: int
    current_artifact: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "status": self.status.value,
            "current_step_index": self.current_step_index,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "result_count": self.result_count,
            "current_artifact": self.current_artifact,
        }


class WorkflowContext:
    """
    Execution state for one run of a workflow.

    Usage:
        context = WorkflowContext(workflow.id, Artifact.from_file("people.csv"))
        executor = WorkflowExecutor(workflow, context)
    """

    def __init__(self, workflow_id: str, input_artifact: Artifact):
        self.workflow_id = workflow_id
        self.input_artifact = input_artifact
        self.current_artifact = input_artifact

        self._status = WorkflowStatus.IDLE
        self._current_step_index = -1
        self._results: dict[str, StepResult] = {}
        self._metadata: dict[str, Any] = {}

        self.started_at: datetime | None = None
        self.completed_at: datetime | None = None

    def __repr__(self) -> str:
        return (
            f"WorkflowContext(workflow_id={self.workflow_id!r}, status={self._status.value!r}, "
            f"current_step_index={self._current_step_index})"
        )

    # --- Accessors ---

    @property
    def status(self) -> WorkflowStatus:
        return self._status

    @property
    def current_step_index(self) -> int:
        return self._current_step_index

    def get_status(self) -> WorkflowStatus:
        return self._status

    def get_context(self) -> ContextSnapshot:
        return ContextSnapshot(
            workflow_id=self.workflow_id,
            status=self._status,
            current_step_index=self._current_step_index,
            started_at=self.started_at,
            completed_at=self.completed_at,
            result_count=len(self._results),
            current_artifact=self.current_artifact.name if self.current_artifact else None,
        )

    def get_step_result(self, step_id: str) -> StepResult | None:
        return self._results.get(step_id)

    def get_step_results(self) -> list[StepResult]:
        """All step results, in the order the steps first ran."""
        return list(self._results.values())

    def get_running_step(self) -> StepResult | None:
        return next(
            (r for r in self._results.values() if r.status == StepStatus.RUNNING),
            None,
        )

    def get_metadata(self) -> dict[str, Any]:
        return dict(self._metadata)

    def set_metadata(self, key: str, value: Any) -> None:
        self._metadata[key] = value

    def clear_metadata(self) -> None:
        self._metadata = {}

    # --- Workflow status ---

    def set_status(self, status: WorkflowStatus) -> None:
        self._status = status

        if status == WorkflowStatus.RUNNING and not self.started_at:
            self.started_at = utcnow()

        if status.is_terminal and not self.completed_at:
            self.completed_at = utcnow()

    def cancel(self) -> None:
        """Mark the context cancelled. Completed step results are kept."""
        running = self.get_running_step()
        if running is not None:
            self.cancel_step(running.step_id)
        self.set_status(WorkflowStatus.CANCELLED)

    # --- Step transitions (executor only) ---

    def _require(self, step_id: str, *allowed: StepStatus) -> StepResult:
        result = self._results.get(step_id)
        if result is None:
            raise InvalidTransitionError(f"No result recorded for step '{step_id}'")
        if result.status not in allowed:
            raise InvalidTransitionError(
                f"Step '{step_id}' is {result.status.value}, "
                f"expected one of: {', '.join(s.value for s in allowed)}"
            )
        return result

    def begin_step(self, step_id: str, step_type: str, index: int) -> StepResult:
        """Mark a step running and move the position to it."""
        if self._status != WorkflowStatus.RUNNING:
            raise InvalidTransitionError(
                f"Cannot start step '{step_id}' while workflow is {self._status.value}"
            )

        running = self.get_running_step()
        if running is not None:
            raise InvalidTransitionError(
                f"Cannot start step '{step_id}' while '{running.step_id}' is running"
            )

        if index < self._current_step_index:
            raise InvalidTransitionError(
                f"Step index {index} is behind current position {self._current_step_index}"
            )

        existing = self._results.get(step_id)
        if existing is not None and existing.status != StepStatus.PENDING:
            raise InvalidTransitionError(
                f"Step '{step_id}' is {existing.status.value}; reset it before running again"
            )

        result = existing or StepResult(step_id=step_id, step_type=step_type)
        result.step_type = step_type
        result.status = StepStatus.RUNNING
        result.output = None
        result.error = None
        result.started_at = utcnow()
        result.finished_at = None
        self._results[step_id] = result
        self._current_step_index = index
        return result

    def complete_step(self, step_id: str, output: Artifact) -> StepResult:
        """Record a step's output and make it the current artifact."""
        result = self._require(step_id, StepStatus.RUNNING)
        result.status = StepStatus.SUCCESS
        result.output = output
        result.finished_at = utcnow()
        self.current_artifact = output
        return result

    def fail_step(self, step_id: str, error: ErrorInfo | BaseException) -> StepResult:
        """Record a step failure."""
        result = self._require(step_id, StepStatus.RUNNING)
        if not isinstance(error, ErrorInfo):
            error = ErrorInfo.from_exception(error)
        result.status = StepStatus.FAILED
        result.error = error
        result.finished_at = utcnow()
        return result

    def cancel_step(self, step_id: str) -> StepResult:
        """Mark a running step cancelled; any output it produced is discarded."""
        result = self._require(step_id, StepStatus.RUNNING)
        result.status = StepStatus.CANCELLED
        result.output = None
        result.finished_at = utcnow()
        return result

    # --- Retry support ---

    def reset_step(self, step_id: str) -> None:
        """Put a step result back to pending, if there is one."""
        result = self._results.get(step_id)
        if result is None:
            return
        if result.status == StepStatus.RUNNING:
            raise InvalidTransitionError(f"Cannot reset running step '{step_id}'")
        result.status = StepStatus.PENDING
        result.output = None
        result.error = None
        result.started_at = None
        result.finished_at = None

    def rewind(self, index: int, reset_ids: list[str], previous_step_id: str | None) -> None:
        """
        Prepare the context to re-run from ``index``.

        Resets the given step results to pending, moves the position to
        ``index - 1`` and restores the artifact the step at ``index`` should
        consume: the output of ``previous_step_id``, or the workflow input.
        """
        if index - 1 > self._current_step_index:
            raise InvalidTransitionError(
                f"Cannot rewind forward from {self._current_step_index} to {index - 1}"
            )

        if previous_step_id is None:
            artifact = self.input_artifact
        else:
            previous = self._require(previous_step_id, StepStatus.SUCCESS)
            artifact = previous.output

        for step_id in reset_ids:
            self.reset_step(step_id)

        self._current_step_index = index - 1
        self.current_artifact = artifact
        self._status = WorkflowStatus.IDLE
        self.completed_at = None
        logger.debug(f"Context {self.workflow_id} rewound to step index {index}")
