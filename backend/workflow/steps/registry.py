"""
Step Registry.

The step factory: builds a concrete Step from a StepConfig by dispatching on
its type tag. New operation types are added by registering a Step subclass;
the workflow and executor never need to change.
"""

from typing import Any, Type

from ..errors import UnknownStepTypeError
from ..models import StepConfig
from .base import Step


# Global registry of step classes
_STEPS: dict[str, Type[Step]] = {}


def register_step(*step_types: str):
    """
    Decorator to register a step class for one or more type tags.

    Usage:
        @register_step("extraction", "extraction-file")
        class ExtractionStep(Step):
            ...
    """
    if not step_types:
        raise ValueError("register_step needs at least one step type")

    def decorator(cls: Type[Step]):
        for step_type in step_types:
            _STEPS[step_type] = cls
        cls.step_type = step_types[0]
        cls.step_types = tuple(step_types)
        return cls
    return decorator


def create_step(config: StepConfig | dict[str, Any]) -> Step:
    """
    Create a step instance from its configuration.

    Args:
        config: A StepConfig or a dict that validates as one

    Returns:
        A new Step instance

    Raises:
        UnknownStepTypeError: If no step class is registered for the type
    """
    if not isinstance(config, StepConfig):
        config = StepConfig.model_validate(config)

    step_cls = _STEPS.get(config.type)
    if step_cls is None:
        raise UnknownStepTypeError(config.type, list_step_types())

    return step_cls(config)


def list_step_types() -> list[str]:
    """List all registered step type tags."""
    return list(_STEPS.keys())


def is_registered(step_type: str) -> bool:
    """Check if a step class is registered for a type tag."""
    return step_type in _STEPS


def available_step_types() -> list[dict[str, str]]:
    """
    Describe the registered step classes for pickers and help output.

    Aliases that share a class with an earlier tag are listed once.
    """
    seen: set[type] = set()
    described = []
    for step_type, cls in _STEPS.items():
        if cls in seen:
            continue
        seen.add(cls)
        described.append({
            "type": step_type,
            "name": cls.display_name or step_type,
            "description": cls.summary,
        })
    return described
