"""Conversation history windowing for the agent loop.

The agent loop of a single subtask can run for hundreds of tool round-trips.
Sending the full history on every request would grow without limit, so the
history is cut down to a fixed head (the task framing) and a fixed tail (the
most recent tool interactions) before each request. The dropped middle is not
summarized; it is simply not sent again.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, TypeVar

T = TypeVar("T")

DEFAULT_HEAD = 2
DEFAULT_TAIL = 10


def reduce_history(messages: Sequence[T], head: int = DEFAULT_HEAD, tail: int = DEFAULT_TAIL) -> list[T]:
    """Keep the first ``head`` and the last ``tail`` messages.

    Args:
        messages: Ordered message sequence.
        head: Number of leading messages to keep.
        tail: Number of trailing messages to keep.

    Returns:
        A new list. Sequences shorter than ``head + tail`` are returned
        unchanged (as a copy); longer ones become
        ``messages[:head] + messages[len - tail:]``.
    """
    items = list(messages)
    if len(items) < head + tail:
        return items

    return items[:head] + items[len(items) - tail:]


@dataclass(frozen=True)
class HistoryWindow:
    """Head/tail window applied to a conversation before each agent request."""

    head: int = DEFAULT_HEAD
    tail: int = DEFAULT_TAIL

    def __post_init__(self) -> None:
        if self.head < 0 or self.tail < 0:
            raise ValueError(f"History window bounds must be non-negative: head={self.head}, tail={self.tail}")

    def reduce(self, messages: Sequence[T]) -> list[T]:
        return reduce_history(messages, self.head, self.tail)
