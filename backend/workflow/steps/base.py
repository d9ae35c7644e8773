"""
Base Workflow Step.

Abstract base class for all step types. A step is derived from a StepConfig,
never mutated afterwards, and knows how to validate its parameters and hand
them to the processing service.
"""

import logging
from abc import ABC
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as ParamsValidationError

from processing.base import ProcessingError, ProcessingService

from ..artifact import Artifact
from ..errors import StepExecutionError
from ..models import StepConfig

logger = logging.getLogger(__name__)


class StepParams(BaseModel):
    """Base class for typed step parameters."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


@dataclass
class StepContext:
    """
    Context passed to a step while it executes.

    Contains everything a step needs besides its own configuration.
    """
    workflow_id: str
    step_index: int
    service: ProcessingService
    metadata: dict[str, Any] = field(default_factory=dict)
    is_cancelled: Callable[[], bool] = lambda: False


def format_params_errors(exc: ParamsValidationError) -> list[str]:
    """Turn a pydantic validation error into one message per field."""
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ())) or "config"
        messages.append(f"Invalid value for '{location}': {err.get('msg', 'invalid')}")
    return messages


class Step(ABC):
    """
    Abstract base class for workflow steps.

    Subclasses set ``params_model`` to the pydantic model of their parameters,
    override ``check`` to add validation rules and ``build_parameters`` /
    ``output_name`` to shape the processing call.
    """

    # Set by @register_step
    step_type: ClassVar[str] = "base"
    step_types: ClassVar[tuple[str, ...]] = ()

    display_name: ClassVar[str] = ""
    summary: ClassVar[str] = ""
    operation: ClassVar[str | None] = None
    output_prefix: ClassVar[str] = "output"
    params_model: ClassVar[type[StepParams]] = StepParams

    def __init__(self, config: StepConfig):
        self._config = config.model_copy(deep=True)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, type={self.type!r})"

    @property
    def id(self) -> str:
        return self._config.id

    @property
    def type(self) -> str:
        return self._config.type

    @property
    def name(self) -> str:
        return self._config.name or self.display_name or self.type

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    def get_config(self) -> StepConfig:
        """Return a copy of the config this step was derived from."""
        return self._config.model_copy(deep=True)

    def parse_params(self, config: dict[str, Any] | None = None) -> tuple[StepParams | None, list[str]]:
        """Parse a raw parameter bag (default: this step's) into the typed parameter model."""
        bag = self._config.config if config is None else config
        try:
            return self.params_model.model_validate(bag), []
        except ParamsValidationError as e:
            return None, format_params_errors(e)

    def validate(self, config: dict[str, Any] | None = None) -> list[str]:
        """
        Validate a step configuration.

        Args:
            config: Parameter bag to check instead of this step's own, e.g. an
                edit that has not been committed yet

        Returns:
            List of human readable problems; empty when the step can run
        """
        params, errors = self.parse_params(config)
        if params is None:
            return errors
        return self.check(params)

    def check(self, params: Any) -> list[str]:
        """Step-specific validation rules. Override in subclasses."""
        return []

    def build_parameters(self, params: Any, artifact: Artifact) -> dict[str, Any]:
        """Build the parameters sent to the processing service."""
        parameters = params.model_dump(exclude_none=True)
        parameters["output_filename"] = self.output_name(params, artifact)
        return parameters

    def output_name(self, params: Any, artifact: Artifact) -> str:
        """Name of the artifact this step produces."""
        explicit = getattr(params, "output_filename", None)
        if explicit:
            return explicit
        return f"{self.output_prefix}-{artifact.name}"

    async def execute(self, artifact: Artifact, ctx: StepContext) -> Artifact:
        """
        Execute the step against the processing service.

        Args:
            artifact: Output of the previous step (or the workflow input)
            ctx: Execution context

        Returns:
            The artifact produced by this step

        Raises:
            StepExecutionError: If the parameters are invalid or the
                processing service fails
        """
        params, errors = self.parse_params()
        if params is None:
            raise StepExecutionError(self.id, "; ".join(errors))

        operation = self.operation or self.step_type
        parameters = self.build_parameters(params, artifact)
        logger.debug(f"Step {self.id} calling {operation} on {artifact.describe()}")

        try:
            output = await ctx.service.process(operation, artifact, parameters)
        except ProcessingError as e:
            raise StepExecutionError(self.id, e.message, cause=e, details=e.details) from e

        output.metadata.setdefault("step_id", self.id)
        output.metadata.setdefault("step_type", self.type)
        return output
