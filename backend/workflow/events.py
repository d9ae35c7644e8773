"""
Lifecycle Events.

The executor reports progress by emitting events on a channel. Hosts can
subscribe directly, or register the classic named callbacks through
ExecutorCallbacks, which is a thin adapter over the channel.

Listeners are notification hooks only: an exception raised by a listener is
logged and never changes the outcome of a run.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

from .models import utcnow

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    """Kinds of lifecycle events."""
    STEP_START = "step_start"
    STEP_COMPLETE = "step_complete"
    STEP_ERROR = "step_error"
    WORKFLOW_COMPLETE = "workflow_complete"
    WORKFLOW_ERROR = "workflow_error"
    WORKFLOW_CANCELLED = "workflow_cancelled"
    WORKFLOW_PAUSED = "workflow_paused"


@dataclass
class WorkflowEvent:
    """A single lifecycle notification."""
    kind: EventKind
    workflow_id: str
    index: int | None = None
    step: Any = None  # Step
    result: Any = None  # StepResult
    error: BaseException | None = None
    context: Any = None  # WorkflowContext
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def step_id(self) -> str | None:
        return self.step.id if self.step is not None else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "workflow_id": self.workflow_id,
            "index": self.index,
            "step_id": self.step_id,
            "result": self.result.to_dict() if self.result is not None else None,
            "error": str(self.error) if self.error is not None else None,
            "timestamp": self.timestamp.isoformat(),
        }


Listener = Callable[[WorkflowEvent], None]


class EventChannel:
    """
    Synchronous fan-out of lifecycle events.

    Keeps a bounded history so a host that subscribes late, or a test, can
    inspect what happened.
    """

    def __init__(self, history_size: int = 200):
        self._listeners: list[Listener] = []
        self._history: deque[WorkflowEvent] = deque(maxlen=history_size)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Add a listener. Returns a function that removes it again."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: WorkflowEvent) -> None:
        self._history.append(event)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.warning(
                    f"Listener {listener!r} failed on {event.kind.value} event",
                    exc_info=True,
                )

    @property
    def history(self) -> list[WorkflowEvent]:
        return list(self._history)

    def clear_history(self) -> None:
        self._history.clear()


@dataclass
class ExecutorCallbacks:
    """Named callbacks, dispatched from the event channel."""
    on_step_start: Optional[Callable[[Any, int], None]] = None
    on_step_complete: Optional[Callable[[Any, Any], None]] = None
    on_step_error: Optional[Callable[[Any, BaseException], None]] = None
    on_workflow_complete: Optional[Callable[[Any], None]] = None
    on_workflow_error: Optional[Callable[[BaseException, Any], None]] = None
    on_workflow_cancelled: Optional[Callable[[Any], None]] = None
    on_workflow_paused: Optional[Callable[[Any], None]] = None

    def __call__(self, event: WorkflowEvent) -> None:
        kind = event.kind
        if kind == EventKind.STEP_START and self.on_step_start:
            self.on_step_start(event.step, event.index)
        elif kind == EventKind.STEP_COMPLETE and self.on_step_complete:
            self.on_step_complete(event.step, event.result)
        elif kind == EventKind.STEP_ERROR and self.on_step_error:
            self.on_step_error(event.step, event.error)
        elif kind == EventKind.WORKFLOW_COMPLETE and self.on_workflow_complete:
            self.on_workflow_complete(event.context)
        elif kind == EventKind.WORKFLOW_ERROR and self.on_workflow_error:
            self.on_workflow_error(event.error, event.context)
        elif kind == EventKind.WORKFLOW_CANCELLED and self.on_workflow_cancelled:
            self.on_workflow_cancelled(event.context)
        elif kind == EventKind.WORKFLOW_PAUSED and self.on_workflow_paused:
            self.on_workflow_paused(event.context)
