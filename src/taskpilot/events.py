"""Event system for run observability.

The orchestrator, the coding step and the confirmation channel report what
they do through an EventEmitter. Subscribers (the run logger, the CLI) turn
these events into logs, summaries and JSON session files. Events never
influence control flow.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Types of events emitted during a run."""

    # Run lifecycle
    RUN_START = "run_start"
    RUN_COMPLETE = "run_complete"
    RUN_PARKED = "run_parked"

    # Task tracking
    TASK_LIST = "task_list"
    TASK_START = "task_start"
    TASK_COMPLETE = "task_complete"

    # Subtask tracking
    SUBTASK_LIST = "subtask_list"
    SUBTASK_START = "subtask_start"
    SUBTASK_COMPLETE = "subtask_complete"

    # Confirmation handshake
    CONFIRMATION_REQUESTED = "confirmation_requested"
    CONFIRMATION_ANSWERED = "confirmation_answered"

    # Agent loop
    TOOL_CALL = "tool_call"
    TOOL_WARNING = "tool_warning"
    MALFORMED_RESULT = "malformed_result"
    AGENT_PROGRESS = "agent_progress"

    ERROR = "error"


@dataclass
class Event:
    """A single event delivered to subscribers."""

    type: EventType
    data: dict = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "type": self.type.value,
            "data": self.data,
            "timestamp": self.timestamp,
        }


class EventEmitter:
    """Fan-out of events to synchronous subscribers."""

    def __init__(self) -> None:
        self._subscribers: list[Callable[[Event], None]] = []

    def subscribe(self, callback: Callable[[Event], None]) -> None:
        """Subscribe to events with a synchronous callback."""
        self._subscribers.append(callback)

    def emit(self, event_type: EventType, data: Optional[dict] = None) -> Event:
        """Emit an event to all subscribers.

        A failing subscriber is logged and skipped.
        """
        event = Event(type=event_type, data=data or {})

        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Error in event subscriber: {e}")

        return event

