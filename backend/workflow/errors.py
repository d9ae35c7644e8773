"""Exceptions raised by the workflow engine."""


class WorkflowError(Exception):
    """Base class for workflow engine errors."""
    pass


class ValidationError(WorkflowError):
    """A workflow failed pre-flight validation. No step has run."""

    def __init__(self, errors: dict[str, list[str]]):
        self.errors = {step_id: list(messages) for step_id, messages in errors.items()}
        summary = "; ".join(
            f"{step_id}: {', '.join(messages)}" for step_id, messages in self.errors.items()
        )
        super().__init__(f"Workflow validation failed: {summary}")


class UnknownStepTypeError(WorkflowError):
    """A step config names a type with no registered step class."""

    def __init__(self, step_type: str, available: list[str] | None = None):
        self.step_type = step_type
        self.available = available or []
        message = f"Unknown step type: {step_type}"
        if self.available:
            message += f". Available: {', '.join(self.available)}"
        super().__init__(message)


class DuplicateStepError(WorkflowError):
    """A step id is already present in the workflow."""

    def __init__(self, step_id: str):
        self.step_id = step_id
        super().__init__(f"Step id already exists in workflow: {step_id}")


class StepExecutionError(WorkflowError):
    """A step failed while executing against the processing service."""

    def __init__(
        self,
        step_id: str,
        message: str,
        cause: BaseException | None = None,
        details: dict | None = None,
    ):
        self.step_id = step_id
        self.message = message
        self.cause = cause
        self.details = dict(details or {})
        super().__init__(f"Step '{step_id}' failed: {message}")


class WorkflowStateError(WorkflowError):
    """An execution control call is not allowed in the current state."""
    pass


class InvalidTransitionError(WorkflowStateError):
    """A step result was asked to make an illegal status transition."""
    pass


class WorkflowLoadError(WorkflowError):
    """A workflow file could not be read or parsed."""
    pass
