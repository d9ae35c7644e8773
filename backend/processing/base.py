"""Base classes for processing services."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from workflow.artifact import Artifact


class ProcessingError(Exception):
    """A processing service could not perform an operation."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.operation = operation
        self.status_code = status_code
        self.details = dict(details or {})
        if operation:
            self.details.setdefault("operation", operation)
        if status_code is not None:
            self.details.setdefault("status_code", status_code)
        super().__init__(message)


class ProcessingService(ABC):
    """Base class for services that run file-transformation operations."""

    name: str = "base"

    @abstractmethod
    async def process(
        self,
        operation: str,
        artifact: "Artifact",
        parameters: dict[str, Any],
    ) -> "Artifact":
        """Run one operation on an artifact.

        Args:
            operation: Operation tag (e.g. "extraction", "sql-generation")
            artifact: Input artifact produced by the previous step
            parameters: Operation-specific parameters

        Returns:
            The artifact produced by the operation

        Raises:
            ProcessingError: If the operation fails
        """
        pass

    def supported_operations(self) -> list[str]:
        """List operation tags this service can run."""
        return []

    async def aclose(self) -> None:
        """Release any held resources (connections, sessions)."""
        return None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()
