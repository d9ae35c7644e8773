"""
Workflow.

An ordered, editable pipeline of steps plus metadata. The StepConfig list is
the source of truth; Step objects are derived from it and rebuilt whenever a
config changes, so the two lists always have the same order and length.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from .errors import DuplicateStepError
from .models import StepConfig, WorkflowConfig, utcnow
from .steps import Step, create_step

logger = logging.getLogger(__name__)


StepCache = dict[tuple[str, str], Step]


def derive_steps(configs: list[StepConfig], cache: StepCache | None = None) -> list[Step]:
    """
    Build the step list for a list of configs.

    Steps whose config is unchanged (same id and fingerprint) are taken from
    the cache instead of being rebuilt.

    Raises:
        UnknownStepTypeError: If any config has an unregistered type
    """
    cache = cache if cache is not None else {}
    steps = []
    for config in configs:
        key = (config.id, config.fingerprint())
        step = cache.get(key)
        if step is None:
            step = create_step(config)
        steps.append(step)
    return steps


@dataclass
class WorkflowValidation:
    """Result of validating every enabled step."""
    valid: bool
    errors: dict[str, list[str]] = field(default_factory=dict)


class Workflow:
    """
    An ordered pipeline of steps.

    Usage:
        workflow = Workflow(WorkflowConfig(name="Clean export"))
        workflow.add_step(StepConfig(type="extraction", config={"columns": ["a"]}))
        result = workflow.validate()
    """

    def __init__(self, config: WorkflowConfig | dict[str, Any]):
        if isinstance(config, WorkflowConfig):
            config = config.model_copy(deep=True)
        else:
            config = WorkflowConfig.model_validate(config)

        ids = [step.id for step in config.steps]
        for step_id in ids:
            if ids.count(step_id) > 1:
                raise DuplicateStepError(step_id)

        self._config = config
        self._cache: StepCache = {}
        self._steps: list[Step] = []
        self._commit(config.steps, touch=False)

    def __repr__(self) -> str:
        return f"Workflow(id={self.id!r}, name={self.name!r}, steps={len(self._steps)})"

    # --- Metadata ---

    @property
    def id(self) -> str:
        return self._config.id

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def description(self) -> str:
        return self._config.description

    @property
    def config(self) -> WorkflowConfig:
        """The live config. Use the mutators to change steps."""
        return self._config

    def get_config(self) -> WorkflowConfig:
        """Return a deep copy of the workflow config."""
        return self._config.model_copy(deep=True)

    def touch(self) -> None:
        """Update the workflow's updated timestamp."""
        self._config.updated_at = utcnow()

    # --- Read accessors ---

    def get_steps(self) -> list[Step]:
        return list(self._steps)

    def get_enabled_steps(self) -> list[Step]:
        return [step for step in self._steps if step.enabled]

    def get_step(self, index: int) -> Step | None:
        if 0 <= index < len(self._steps):
            return self._steps[index]
        return None

    def get_step_by_id(self, step_id: str) -> Step | None:
        return next((step for step in self._steps if step.id == step_id), None)

    def get_step_count(self) -> int:
        return len(self._steps)

    def index_of(self, step_id: str) -> int:
        return next(
            (i for i, config in enumerate(self._config.steps) if config.id == step_id),
            -1,
        )

    # --- Mutation ---

    def _commit(self, configs: list[StepConfig], touch: bool = True) -> None:
        # Build first so a factory error leaves the workflow untouched
        steps = derive_steps(configs, self._cache)
        self._config.steps = list(configs)
        self._steps = steps
        self._cache = {(step.id, config.fingerprint()): step for step, config in zip(steps, configs)}
        if touch:
            self.touch()

    def add_step(self, step: Step | StepConfig | dict[str, Any], index: int | None = None) -> Step:
        """
        Add a step to the workflow.

        Args:
            step: A Step, StepConfig, or dict that validates as a StepConfig
            index: Position to insert at (default: append)

        Returns:
            The step now held by the workflow

        Raises:
            DuplicateStepError: If the id is already in the workflow
            UnknownStepTypeError: If the type is not registered
        """
        if isinstance(step, Step):
            config = step.get_config()
        elif isinstance(step, StepConfig):
            config = step.model_copy(deep=True)
        else:
            config = StepConfig.model_validate(step)

        if self.index_of(config.id) != -1:
            raise DuplicateStepError(config.id)

        configs = list(self._config.steps)
        if index is None:
            configs.append(config)
        else:
            configs.insert(index, config)
        self._commit(configs)

        logger.debug(f"Added step {config.id} ({config.type}) to workflow {self.id}")
        return self.get_step_by_id(config.id)

    def remove_step(self, step_id: str) -> bool:
        """Remove a step. Returns False when no step has that id."""
        index = self.index_of(step_id)
        if index == -1:
            return False

        configs = list(self._config.steps)
        del configs[index]
        self._commit(configs)
        return True

    def update_step(self, step_id: str, new_config: StepConfig | dict[str, Any]) -> bool:
        """
        Replace or patch a step's config and rebuild the step.

        A StepConfig replaces the existing config; a dict is applied as a
        partial update on top of it. The step keeps its id and position.
        Returns False when no step has that id.
        """
        index = self.index_of(step_id)
        if index == -1:
            return False

        current = self._config.steps[index]
        if isinstance(new_config, StepConfig):
            updated = new_config.model_copy(deep=True, update={"id": step_id})
        else:
            merged = current.model_dump()
            merged.update(new_config)
            merged["id"] = step_id
            updated = StepConfig.model_validate(merged)

        configs = list(self._config.steps)
        configs[index] = updated
        self._commit(configs)
        return True

    def set_step_enabled(self, step_id: str, enabled: bool) -> bool:
        return self.update_step(step_id, {"enabled": enabled})

    def reorder_steps(self, from_index: int, to_index: int) -> bool:
        """Move a step to a new position. Returns False for out-of-range indices."""
        count = len(self._config.steps)
        if not (0 <= from_index < count and 0 <= to_index < count):
            return False

        configs = list(self._config.steps)
        moved = configs.pop(from_index)
        configs.insert(to_index, moved)
        self._commit(configs)
        return True

    # --- Validation ---

    def validate(self) -> WorkflowValidation:
        """
        Validate every enabled step.

        Disabled steps never contribute errors. The workflow is valid when
        every enabled step's error list is empty.
        """
        errors: dict[str, list[str]] = {}
        for step in self.get_enabled_steps():
            step_errors = step.validate()
            if step_errors:
                errors[step.id] = step_errors

        return WorkflowValidation(valid=not errors, errors=errors)

    def clone(self, new_id: str | None = None) -> "Workflow":
        """Copy the workflow under a new id with fresh timestamps."""
        now = utcnow()
        config = self._config.model_copy(
            deep=True,
            update={"id": new_id or f"{self.id}-copy", "created_at": now, "updated_at": now},
        )
        return Workflow(config)
