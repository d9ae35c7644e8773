"""
Workflow Data Models.

Serializable configuration (StepConfig, WorkflowConfig) is modelled with
pydantic so it can be loaded from and saved to workflow files. Execution
state (StepResult, ErrorInfo) uses plain dataclasses because it carries
artifacts that hold in-memory tables.
"""

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from .artifact import Artifact


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_workflow_id() -> str:
    return f"workflow-{uuid4()}"


def generate_step_id() -> str:
    return f"step-{uuid4()}"


class StepType(str, Enum):
    """Operation tags understood by the step factory."""
    EXTRACTION = "extraction"
    EXTRACTION_FILE = "extraction-file"
    MAPPING = "mapping"
    NORMALIZATION = "normalization"
    SEARCH = "search"
    SQL_GENERATION = "sql-generation"
    SQL_CUSTOM = "sql-custom"
    JSON_GENERATION = "json-generation"
    JSON_TEMPLATE = "json-template"
    CSV_CONVERT = "csv-convert"
    BINDING_SINGLE = "binding-single"
    BINDING_MULTI = "binding-multi"
    FILE_BINDING = "file-binding"


class StepStatus(str, Enum):
    """Status of a single step within one execution context."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.SUCCESS, StepStatus.FAILED, StepStatus.CANCELLED)


class WorkflowStatus(str, Enum):
    """Status of an execution context."""
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            WorkflowStatus.COMPLETED,
            WorkflowStatus.FAILED,
            WorkflowStatus.CANCELLED,
        )


class DraftStatus(str, Enum):
    """Status stored alongside a saved workflow definition."""
    DRAFT = "draft"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# --- Configuration ---

class StepConfig(BaseModel):
    """Serializable description of one configured operation."""
    id: str = Field(default_factory=generate_step_id)
    type: str
    name: str = ""
    description: str = ""
    config: dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True

    def fingerprint(self) -> str:
        """Stable hash of the full config, used to cache derived steps."""
        payload = json.dumps(self.model_dump(mode="json"), sort_keys=True, default=str)
        return hashlib.sha256(payload.encode()).hexdigest()[:16]


class WorkflowConfig(BaseModel):
    """Serializable description of a whole workflow."""
    id: str = Field(default_factory=generate_workflow_id)
    name: str
    description: str = ""
    steps: list[StepConfig] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    status: Optional[DraftStatus] = DraftStatus.DRAFT


# --- Execution state ---

@dataclass
class ErrorInfo:
    """Error detail recorded on a failed step result."""
    message: str
    type: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ErrorInfo":
        message = getattr(exc, "message", None) or str(exc) or type(exc).__name__
        details: dict[str, Any] = dict(getattr(exc, "details", None) or {})

        cause = getattr(exc, "cause", None) or exc.__cause__
        if cause is not None:
            details.setdefault("cause", f"{type(cause).__name__}: {cause}")
            for attr in ("operation", "status_code"):
                value = getattr(cause, attr, None)
                if value is not None:
                    details.setdefault(attr, value)

        return cls(message=message, type=type(exc).__name__, details=details)

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "type": self.type, "details": self.details}


@dataclass
class StepResult:
    """Outcome of one step within one execution context."""
    step_id: str
    step_type: str
    status: StepStatus = StepStatus.PENDING
    output: Artifact | None = None
    error: ErrorInfo | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def duration_ms(self) -> int:
        if not self.started_at or not self.finished_at:
            return 0
        return int((self.finished_at - self.started_at).total_seconds() * 1000)

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_id": self.step_id,
            "step_type": self.step_type,
            "status": self.status.value,
            "output": self.output.to_dict() if self.output else None,
            "error": self.error.to_dict() if self.error else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_ms": self.duration_ms,
        }
