"""Test fixtures and configuration."""

import sys
from pathlib import Path
from typing import Any, Awaitable, Callable

import pandas as pd
import pytest

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from processing.base import ProcessingError, ProcessingService
from workflow import Artifact, Workflow


@pytest.fixture(scope="session")
def anyio_backend():
    """Use asyncio for async tests."""
    return "asyncio"


class RecordingService(ProcessingService):
    """
    Processing service double.

    Every call is recorded. Outputs are text artifacts named after the
    step's output_filename, so each step in a test workflow can be told
    apart by that name.
    """

    name = "recording"

    def __init__(self):
        self.calls: list[dict[str, Any]] = []
        # output name -> number of times to fail before succeeding
        self.failures: dict[str, int] = {}
        # output name -> coroutine function awaited before answering
        self.hooks: dict[str, Callable[[], Awaitable[None]]] = {}

    async def process(self, operation: str, artifact: Artifact, parameters: dict[str, Any]) -> Artifact:
        name = parameters.get("output_filename", operation)
        self.calls.append({
            "operation": operation,
            "input": artifact.name,
            "output": name,
            "parameters": dict(parameters),
        })

        hook = self.hooks.get(name)
        if hook is not None:
            await hook()

        if self.failures.get(name, 0) > 0:
            self.failures[name] -= 1
            raise ProcessingError(f"Server error producing {name}", operation=operation, status_code=500)

        return Artifact.from_text(f"{artifact.name} -> {name}", name)

    @property
    def outputs(self) -> list[str]:
        return [call["output"] for call in self.calls]


def extraction_config(step_id: str, **config: Any) -> dict[str, Any]:
    """Step config for a valid extraction step whose output is '<id>.csv'."""
    return {
        "id": step_id,
        "type": "extraction",
        "config": {"columns": ["name"], "output_filename": f"{step_id}.csv", **config},
    }


@pytest.fixture
def step_config():
    return extraction_config


@pytest.fixture
def service():
    return RecordingService()


@pytest.fixture
def make_workflow():
    """Build a workflow of valid extraction steps with the given ids."""
    def factory(*step_ids: str, workflow_id: str = "wf-test") -> Workflow:
        return Workflow({
            "id": workflow_id,
            "name": "Test workflow",
            "steps": [extraction_config(step_id) for step_id in step_ids],
        })
    return factory


@pytest.fixture
def people():
    """A small table with messy values."""
    return pd.DataFrame({
        "id": [1, 2, 3, 4],
        "name": ["  alice smith ", "Bob JONES", "carol", "dave"],
        "email": [" Alice@Example.COM", "bob@example.com", None, "dave@example.com"],
        "age": [34, 19, 52, 27],
        "city": ["Paris", "Berlin", "Paris", ""],
    })


@pytest.fixture
def people_csv(tmp_path, people):
    path = tmp_path / "people.csv"
    people.to_csv(path, index=False)
    return path


@pytest.fixture
def orders_csv(tmp_path):
    """Binding table keyed by person id."""
    path = tmp_path / "orders.csv"
    pd.DataFrame({
        "id": [1, 2, 2, 5],
        "city": ["Paris", "Berlin", "Munich", "Rome"],
        "total": [10.5, 20.0, 99.0, 7.0],
        "status": ["paid", "open", "void", "paid"],
    }).to_csv(path, index=False)
    return path
