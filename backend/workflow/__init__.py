"""
Tabflow Workflow Package.

Provides:
  - Artifacts passed between steps
  - Step configuration models and the step factory
  - Workflow definition, editing and validation
  - Execution context and per-step results
  - Sequential executor with cancel, pause and retry
  - Lifecycle events and callback adapters
  - Workflow file loading
"""

from .artifact import Artifact

from .models import (
    DraftStatus,
    ErrorInfo,
    StepConfig,
    StepResult,
    StepStatus,
    StepType,
    WorkflowConfig,
    WorkflowStatus,
    generate_step_id,
    generate_workflow_id,
)

from .errors import (
    DuplicateStepError,
    InvalidTransitionError,
    StepExecutionError,
    UnknownStepTypeError,
    ValidationError,
    WorkflowError,
    WorkflowLoadError,
    WorkflowStateError,
)

from .steps import (
    Step,
    StepContext,
    available_step_types,
    create_step,
    is_registered,
    list_step_types,
    register_step,
)

from .workflow import (
    Workflow,
    WorkflowValidation,
    derive_steps,
)

from .context import (
    ContextSnapshot,
    WorkflowContext,
)

from .events import (
    EventChannel,
    EventKind,
    ExecutorCallbacks,
    WorkflowEvent,
)

from .executor import WorkflowExecutor

from .loader import (
    dump_workflow,
    load_workflow,
    parse_workflow,
)

__all__ = [
    # Artifacts
    "Artifact",

    # Models
    "DraftStatus",
    "ErrorInfo",
    "StepConfig",
    "StepResult",
    "StepStatus",
    "StepType",
    "WorkflowConfig",
    "WorkflowStatus",
    "generate_step_id",
    "generate_workflow_id",

    # Errors
    "DuplicateStepError",
    "InvalidTransitionError",
    "StepExecutionError",
    "UnknownStepTypeError",
    "ValidationError",
    "WorkflowError",
    "WorkflowLoadError",
    "WorkflowStateError",

    # Steps
    "Step",
    "StepContext",
    "available_step_types",
    "create_step",
    "is_registered",
    "list_step_types",
    "register_step",

    # Workflow
    "Workflow",
    "WorkflowValidation",
    "derive_steps",

    # Context
    "ContextSnapshot",
    "WorkflowContext",

    # Events
    "EventChannel",
    "EventKind",
    "ExecutorCallbacks",
    "WorkflowEvent",

    # Execution
    "WorkflowExecutor",

    # Files
    "dump_workflow",
    "load_workflow",
    "parse_workflow",
]
