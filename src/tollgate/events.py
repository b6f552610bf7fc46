"""
Lifecycle events for observers.

The pipeline only emits discrete events ("started step X", "step X ok",
"done") through a sink passed in at call time. Delivery, retries and
connection management belong to whoever implements the sink.
"""

import time
from typing import Any, Dict, List, Literal, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from tollgate.logging_config import logger


EventStatus = Literal["started", "ok", "failed", "skipped", "done"]


class PipelineEvent(BaseModel):
    operation: str  # "modification" | "promotion" | "rollback"
    step: str
    status: EventStatus
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: float = Field(default_factory=time.time)


@runtime_checkable
class EventSink(Protocol):
    def emit(self, event: PipelineEvent) -> None:
        ...


class NullSink:
    """Discards every event."""

    def emit(self, event: PipelineEvent) -> None:
        return None


class LoggingSink:
    """Writes events to the application log."""

    def emit(self, event: PipelineEvent) -> None:
        message = f"[{event.operation}] {event.step}: {event.status}"
        if event.payload:
            message += f" {event.payload}"
        if event.status == "failed":
            logger.warning(message)
        else:
            logger.info(message)


class CollectingSink:
    """Keeps events in memory, in emission order."""

    def __init__(self):
        self.events: List[PipelineEvent] = []

    def emit(self, event: PipelineEvent) -> None:
        self.events.append(event)

    def steps(self, status: Optional[EventStatus] = None) -> List[str]:
        return [e.step for e in self.events if status is None or e.status == status]


class EventEmitter:
    """
    Binds a sink to one operation name.

    Sink errors are logged and never reach the pipeline.
    """

    def __init__(self, sink: Optional[EventSink], operation: str):
        self.sink = sink or NullSink()
        self.operation = operation

    def emit(self, step: str, status: EventStatus, **payload: Any) -> None:
        event = PipelineEvent(
            operation=self.operation,
            step=step,
            status=status,
            payload=payload,
        )
        try:
            self.sink.emit(event)
        except Exception as e:
            logger.warning(f"Event sink raised on {step}/{status}: {e}")

    def started(self, step: str, **payload: Any) -> None:
        self.emit(step, "started", **payload)

    def ok(self, step: str, **payload: Any) -> None:
        self.emit(step, "ok", **payload)

    def failed(self, step: str, **payload: Any) -> None:
        self.emit(step, "failed", **payload)

    def skipped(self, step: str, **payload: Any) -> None:
        self.emit(step, "skipped", **payload)

    def done(self, **payload: Any) -> None:
        self.emit("done", "done", **payload)
