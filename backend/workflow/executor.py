"""
Workflow Executor.

Drives a WorkflowContext through a Workflow's enabled steps, one at a time:
  - Pre-flight validation (nothing runs if any enabled step is invalid)
  - Sequential execution, each step consuming the previous step's output
  - Stop-on-failure with the failing step recorded in the context
  - Cooperative cancel and pause, honored between steps
  - Retry from any step without recomputing earlier outputs

Step-level failures never escape execute(); they are recorded on the
context and reported through lifecycle events. Only pre-flight problems
(validation, unknown step types, illegal state) raise.
"""

import asyncio
import logging
from typing import Any

from processing.base import ProcessingService

from .context import WorkflowContext
from .errors import StepExecutionError, ValidationError, WorkflowStateError
from .events import EventChannel, EventKind, ExecutorCallbacks, WorkflowEvent
from .models import DraftStatus, StepStatus, WorkflowStatus
from .steps import Step, StepContext
from .workflow import Workflow

logger = logging.getLogger(__name__)


class WorkflowExecutor:
    """
    Executes a workflow against a processing service.

    Usage:
        executor = WorkflowExecutor(workflow, context, service=LocalProcessingService())
        executor.set_callbacks(on_step_complete=lambda step, result: ...)
        context = await executor.execute()
        if context.status == WorkflowStatus.FAILED:
            context = await executor.retry_failed()
    """

    def __init__(
        self,
        workflow: Workflow,
        context: WorkflowContext,
        service: ProcessingService | None = None,
        events: EventChannel | None = None,
    ):
        if context.workflow_id != workflow.id:
            raise WorkflowStateError(
                f"Context belongs to workflow '{context.workflow_id}', not '{workflow.id}'"
            )

        self.workflow = workflow
        self.context = context
        self._service = service
        self._events = events or EventChannel()
        self._callbacks: ExecutorCallbacks | None = None
        self._unsubscribe_callbacks = None

        self._executing = False
        self._cancel_requested = False
        self._pause_requested = False

    # --- Accessors ---

    @property
    def events(self) -> EventChannel:
        return self._events

    @property
    def is_executing(self) -> bool:
        return self._executing

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    def get_context(self) -> WorkflowContext:
        return self.context

    def get_workflow(self) -> Workflow:
        return self.workflow

    def set_callbacks(self, callbacks: ExecutorCallbacks | None = None, **named: Any) -> None:
        """
        Register lifecycle callbacks, replacing any previously set.

        Accepts an ExecutorCallbacks instance or the callbacks by name
        (on_step_start=..., on_workflow_error=..., ...).
        """
        if self._unsubscribe_callbacks:
            self._unsubscribe_callbacks()
            self._unsubscribe_callbacks = None

        self._callbacks = callbacks or ExecutorCallbacks(**named)
        self._unsubscribe_callbacks = self._events.subscribe(self._callbacks)

    # --- Execution control ---

    async def execute(self) -> WorkflowContext:
        """
        Run the workflow from the step after ``current_step_index``.

        Returns:
            The context, in status completed, failed, cancelled or paused

        Raises:
            ValidationError: If any enabled step has configuration errors
            WorkflowStateError: If already executing, or the context is in a
                terminal state (use retry() / retry_failed() instead)
        """
        self._ensure_not_executing()

        status = self.context.status
        if status not in (WorkflowStatus.IDLE, WorkflowStatus.PAUSED):
            raise WorkflowStateError(
                f"Cannot execute a workflow context that is {status.value}; "
                f"use retry() or retry_failed()"
            )

        steps = self._preflight()
        return await self._run(steps)

    def cancel(self) -> None:
        """
        Request cancellation.

        Cooperative: the step in flight is not interrupted, but its output is
        discarded and no further step starts. A paused context is cancelled
        immediately.
        """
        if not self._executing and self.context.status == WorkflowStatus.PAUSED:
            self.context.cancel()
            self._set_draft_status(DraftStatus.CANCELLED)
            self._emit(EventKind.WORKFLOW_CANCELLED)
            return

        self._cancel_requested = True
        logger.info(f"Cancellation requested for workflow {self.workflow.id}")

    def pause(self) -> None:
        """Request a pause. The step in flight completes normally."""
        self._pause_requested = True
        logger.info(f"Pause requested for workflow {self.workflow.id}")

    async def retry(self, step_index: int) -> WorkflowContext:
        """
        Re-run the workflow from an enabled-step index.

        Results before ``step_index`` are kept and the output of step
        ``step_index - 1`` is reused as input; the result at ``step_index``
        and any later results are reset to pending and recomputed.

        Raises:
            IndexError: If step_index is out of range
            ValidationError: If any enabled step has configuration errors
            WorkflowStateError: If executing, or step_index is beyond the
                next step to run
        """
        self._ensure_not_executing()
        steps = self._preflight()

        if not 0 <= step_index < len(steps):
            raise IndexError(f"Step index {step_index} out of range (0..{len(steps) - 1})")

        if step_index > self.context.current_step_index + 1:
            raise WorkflowStateError(
                f"Cannot retry step {step_index}: steps before it have not run"
            )

        previous_id = steps[step_index - 1].id if step_index > 0 else None
        self.context.rewind(step_index, [step.id for step in steps[step_index:]], previous_id)

        self._cancel_requested = False
        self._pause_requested = False
        logger.info(f"Retrying workflow {self.workflow.id} from step {step_index}")
        return await self._run(steps)

    async def retry_failed(self) -> WorkflowContext:
        """
        Retry the step that failed or was cancelled, or resume after an
        interruption between steps.

        Raises:
            WorkflowStateError: If there is nothing to retry
        """
        steps = self.workflow.get_enabled_steps()
        index = self.context.current_step_index

        if 0 <= index < len(steps):
            result = self.context.get_step_result(steps[index].id)
            if result is not None and result.status in (StepStatus.FAILED, StepStatus.CANCELLED):
                return await self.retry(index)

        interrupted = (WorkflowStatus.PAUSED, WorkflowStatus.CANCELLED)
        if self.context.status in interrupted and index + 1 < len(steps):
            return await self.retry(index + 1)

        raise WorkflowStateError(
            f"Nothing to retry: workflow context is {self.context.status.value}"
        )

    # --- Internals ---

    def _ensure_not_executing(self) -> None:
        if self._executing:
            raise WorkflowStateError(f"Workflow {self.workflow.id} is already executing")

    def _preflight(self) -> list[Step]:
        validation = self.workflow.validate()
        if not validation.valid:
            raise ValidationError(validation.errors)
        return self.workflow.get_enabled_steps()

    def _resolve_service(self) -> ProcessingService:
        if self._service is None:
            from processing import get_processing_service
            self._service = get_processing_service()
        return self._service

    def _step_context(self, index: int, service: ProcessingService) -> StepContext:
        return StepContext(
            workflow_id=self.workflow.id,
            step_index=index,
            service=service,
            metadata=self.context.get_metadata(),
            is_cancelled=lambda: self._cancel_requested,
        )

    def _emit(self, kind: EventKind, **kwargs: Any) -> None:
        self._events.emit(WorkflowEvent(
            kind=kind,
            workflow_id=self.workflow.id,
            context=self.context,
            **kwargs,
        ))

    def _set_draft_status(self, status: DraftStatus) -> None:
        self.workflow.config.status = status

    async def _run(self, steps: list[Step]) -> WorkflowContext:
        ctx = self.context
        service = self._resolve_service()

        self._executing = True
        ctx.set_status(WorkflowStatus.RUNNING)
        self._set_draft_status(DraftStatus.RUNNING)

        start = ctx.current_step_index + 1
        logger.info(
            f"Executing workflow {self.workflow.id} ({self.workflow.name}): "
            f"steps {start}..{len(steps) - 1} on {service.name}"
        )

        try:
            for index in range(start, len(steps)):
                if self._cancel_requested:
                    return self._finish_cancelled()
                if self._pause_requested:
                    return self._finish_paused()

                step = steps[index]
                result = ctx.begin_step(step.id, step.type, index)
                logger.info(f"Step {index} ({step.id}, {step.type}) started")
                self._emit(EventKind.STEP_START, index=index, step=step, result=result)

                try:
                    output = await step.execute(ctx.current_artifact, self._step_context(index, service))
                except asyncio.CancelledError:
                    # The task running us was cancelled; nothing may stay running
                    ctx.cancel()
                    self._set_draft_status(DraftStatus.CANCELLED)
                    logger.info(f"Workflow {self.workflow.id} cancelled during step {index} ({step.id})")
                    self._emit(EventKind.WORKFLOW_CANCELLED, index=index, step=step)
                    raise
                except StepExecutionError as e:
                    logger.error(f"Step {index} ({step.id}) failed: {e.message}")
                    return self._finish_failed(step, index, e)
                except Exception as e:
                    logger.error(f"Step {index} ({step.id}) raised unexpectedly: {e}", exc_info=True)
                    error = StepExecutionError(step.id, str(e) or type(e).__name__, cause=e)
                    return self._finish_failed(step, index, error)

                if self._cancel_requested:
                    logger.info(f"Discarding output of step {index} ({step.id}): cancelled")
                    ctx.cancel_step(step.id)
                    return self._finish_cancelled()

                result = ctx.complete_step(step.id, output)
                logger.info(f"Step {index} ({step.id}) completed: {output.describe()}")
                self._emit(EventKind.STEP_COMPLETE, index=index, step=step, result=result)

            ctx.set_status(WorkflowStatus.COMPLETED)
            self._set_draft_status(DraftStatus.COMPLETED)
            logger.info(f"Workflow {self.workflow.id} completed")
            self._emit(EventKind.WORKFLOW_COMPLETE)
            return ctx
        finally:
            self._executing = False
            self._cancel_requested = False
            self._pause_requested = False

    def _finish_failed(self, step: Step, index: int, error: StepExecutionError) -> WorkflowContext:
        result = self.context.fail_step(step.id, error)
        self._emit(EventKind.STEP_ERROR, index=index, step=step, result=result, error=error)

        self.context.set_status(WorkflowStatus.FAILED)
        self._set_draft_status(DraftStatus.FAILED)
        self._emit(EventKind.WORKFLOW_ERROR, index=index, step=step, result=result, error=error)
        return self.context

    def _finish_cancelled(self) -> WorkflowContext:
        self.context.set_status(WorkflowStatus.CANCELLED)
        self._set_draft_status(DraftStatus.CANCELLED)
        logger.info(f"Workflow {self.workflow.id} cancelled")
        self._emit(EventKind.WORKFLOW_CANCELLED)
        return self.context

    def _finish_paused(self) -> WorkflowContext:
        self.context.set_status(WorkflowStatus.PAUSED)
        logger.info(
            f"Workflow {self.workflow.id} paused after step {self.context.current_step_index}"
        )
        self._emit(EventKind.WORKFLOW_PAUSED)
        return self.context
