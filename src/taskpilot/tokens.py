"""Rough token counts for debug logging.

The agent loop logs how large the windowed conversation is before each
request, so the effect of the head/tail window can be followed in the logs
without a tokenizer dependency.
"""

from __future__ import annotations

import json
import math
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from .agent import Message

TOKENS_PER_WORD = 1.3


def estimate_tokens(text: str) -> int:
    """Estimate the token count of a text from its word count."""
    if not text:
        return 0
    return math.ceil(len(text.split()) * TOKENS_PER_WORD)


def estimate_message_tokens(messages: Iterable[Message]) -> int:
    """Estimate the token count of a conversation.

    Tool call arguments are counted in their JSON form, which is how they are
    sent to the model.
    """
    total = 0
    for message in messages:
        total += estimate_tokens(message.text)
        if message.arguments:
            total += estimate_tokens(json.dumps(message.arguments))
    return total


def format_token_count(tokens: int) -> str:
    """Format a token count for display, e.g. "1.2K tokens" or "15 tokens"."""
    if tokens >= 1000:
        return f"{tokens / 1000:.1f}K tokens"
    return f"{tokens} tokens"
