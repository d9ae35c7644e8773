"""
Workflow File Loader.

Reads and writes workflow definitions as YAML or JSON. Example:

    name: Customer export
    steps:
      - id: pick
        type: extraction
        config:
          columns: [name, email]
      - id: clean
        type: normalization
        config:
          column: email
          type: normalize_email
"""

import json
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from .errors import WorkflowLoadError
from .models import WorkflowConfig


JSON_SUFFIXES = {".json"}


def parse_workflow(data: dict[str, Any] | str) -> WorkflowConfig:
    """
    Parse a workflow definition.

    Args:
        data: A mapping, or YAML/JSON text (JSON is valid YAML)

    Returns:
        The parsed WorkflowConfig

    Raises:
        WorkflowLoadError: If the content is malformed
    """
    if isinstance(data, str):
        try:
            data = yaml.safe_load(data)
        except yaml.YAMLError as e:
            raise WorkflowLoadError(f"Invalid YAML: {e}") from e

    if not isinstance(data, dict):
        raise WorkflowLoadError("Workflow must be a mapping")

    if "name" not in data:
        raise WorkflowLoadError("Workflow missing required 'name' field")

    steps = data.get("steps") or []
    if not isinstance(steps, list):
        raise WorkflowLoadError("Workflow 'steps' must be a list")

    for i, step in enumerate(steps):
        if not isinstance(step, dict):
            raise WorkflowLoadError(f"steps[{i}] must be a mapping")
        if "type" not in step:
            raise WorkflowLoadError(f"steps[{i}] missing required 'type' field")

    try:
        return WorkflowConfig.model_validate({**data, "steps": steps})
    except PydanticValidationError as e:
        raise WorkflowLoadError(f"Invalid workflow definition: {e}") from e


def load_workflow(path: Path | str) -> WorkflowConfig:
    """Load a workflow definition from a YAML or JSON file."""
    path = Path(path)
    if not path.exists():
        raise WorkflowLoadError(f"Workflow file not found: {path}")

    try:
        content = path.read_text()
    except OSError as e:
        raise WorkflowLoadError(f"Cannot read workflow file: {e}") from e

    if not content.strip():
        raise WorkflowLoadError(f"Workflow file is empty: {path}")

    return parse_workflow(content)


def dump_workflow(config: WorkflowConfig, path: Path | str) -> Path:
    """Write a workflow definition. The format follows the file suffix."""
    path = Path(path)
    data = config.model_dump(mode="json", exclude_none=True)

    if path.suffix.lower() in JSON_SUFFIXES:
        content = json.dumps(data, indent=2)
    else:
        content = yaml.safe_dump(data, sort_keys=False, allow_unicode=True)

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path
