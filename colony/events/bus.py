"""Event bus — in-process fan-out of sandbox and cycle events.

Topics and their payloads:

    sandbox.spawned      SpawnedEvent
    sandbox.rejected     RejectedEvent
    sandbox.exited       RunFinishedEvent   (process ended on its own)
    sandbox.terminated   RunFinishedEvent   (ceiling or timeout kill)
    cycle.started        CycleEvent
    cycle.completed      CycleEvent
    cycle.failed         CycleEvent

Patterns use fnmatch: "sandbox.*" matches every sandbox topic, "*"
matches everything. Handlers run in subscription order; the audit trail
subscribes to sandbox outcomes and attach_log_sink() mirrors every event
into the structured log.
"""

from __future__ import annotations

import fnmatch
import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import structlog
from pydantic import BaseModel, Field

from colony.types import new_id

_logger = logging.getLogger(__name__)

SANDBOX_SPAWNED = "sandbox.spawned"
SANDBOX_REJECTED = "sandbox.rejected"
SANDBOX_EXITED = "sandbox.exited"
SANDBOX_TERMINATED = "sandbox.terminated"
CYCLE_STARTED = "cycle.started"
CYCLE_COMPLETED = "cycle.completed"
CYCLE_FAILED = "cycle.failed"


# ── Payloads ─────────────────────────────────────────────────────


class SpawnedEvent(BaseModel):
    script: str
    os_pid: int | None = None


class RejectedEvent(BaseModel):
    script: str
    mode: str
    reason: str


class RunFinishedEvent(BaseModel):
    script: str
    mode: str
    argv: list[str] = Field(default_factory=list)
    exit_code: int | None = None
    succeeded: bool = False
    reason: str = ""
    bytes: int = 0


class CycleEvent(BaseModel):
    mode: str
    source: str = ""
    summary: str = ""
    output_bytes: int = 0
    error: str = ""
    error_type: str = ""


class Event(BaseModel):
    id: str = Field(default_factory=new_id)
    topic: str
    data: dict[str, Any] = Field(default_factory=dict)
    source: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


EventHandler = Callable[[Event], Awaitable[None]]


class EventBus:
    """Pattern-matched pub/sub with a bounded, newest-first history."""

    def __init__(self, history_limit: int = 500) -> None:
        self._subscriptions: list[tuple[str, EventHandler]] = []
        self._history: deque[Event] = deque(maxlen=history_limit)

    def subscribe(self, pattern: str, handler: EventHandler) -> None:
        self._subscriptions.append((pattern, handler))

    def unsubscribe(self, pattern: str, handler: EventHandler) -> None:
        if (pattern, handler) in self._subscriptions:
            self._subscriptions.remove((pattern, handler))

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def emit(
        self, topic: str, payload: BaseModel | dict | None = None, source: str = "",
    ) -> Event:
        """Record the event, then hand it to every matching handler.

        A failing handler is logged and does not stop the others.
        """
        if isinstance(payload, BaseModel):
            data = payload.model_dump(mode="json")
        else:
            data = dict(payload or {})
        event = Event(topic=topic, data=data, source=source)
        self._history.append(event)

        for pattern, handler in list(self._subscriptions):
            if not fnmatch.fnmatchcase(topic, pattern):
                continue
            try:
                await handler(event)
            except Exception:
                _logger.exception("Handler for '%s' failed on %s", pattern, topic)
        return event

    def history(self, topic_filter: str = "*", limit: int = 50) -> list[Event]:
        matching = [e for e in reversed(self._history) if fnmatch.fnmatchcase(e.topic, topic_filter)]
        return matching[:limit]


def attach_log_sink(bus: EventBus, pattern: str = "*") -> EventHandler:
    """Mirror matching events into the structured log. Returns the handler."""
    log = structlog.get_logger("colony.events")

    async def _sink(event: Event) -> None:
        log.info(event.topic, source=event.source, **event.data)

    bus.subscribe(pattern, _sink)
    return _sink
