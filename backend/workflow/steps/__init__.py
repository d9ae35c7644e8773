"""
Workflow Steps.

Each operation type has a corresponding step class that knows how to:
  - Parse and validate its typed parameters
  - Build the call it makes to the processing service
  - Name the artifact it produces
"""

from .base import Step, StepContext, StepParams
from .registry import (
    available_step_types,
    create_step,
    is_registered,
    list_step_types,
    register_step,
)

# Import all step modules to register them
from . import binding, generate, table  # noqa: F401

__all__ = [
    "Step",
    "StepContext",
    "StepParams",
    "available_step_types",
    "create_step",
    "is_registered",
    "list_step_types",
    "register_step",
]
