"""Agent capability: one conversational turn of the coding agent.

A turn takes the coding instructions, the subtask's conversation thread and a
new user input, and streams back fragments (reasoning, tool calls, tool
results and text) until the model stops asking for tools. Every exchanged
message is appended to the thread; the thread's history window decides what
is actually sent with each request.
"""

from __future__ import annotations

import json
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Iterator, Optional, Sequence, Union

import anthropic

from .config import AgentSettings
from .history import HistoryWindow
from .tokens import estimate_message_tokens, format_token_count
from .tools import Toolbox, ToolError

logger = logging.getLogger(__name__)


class AgentError(Exception):
    """Raised when the agent capability itself fails (API errors, bad responses)."""

    pass


# =============================================================================
# Conversation model
# =============================================================================


class MessageKind(str, Enum):
    TEXT = "text"
    REASONING = "reasoning"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"


@dataclass
class Message:
    """One entry of a conversation.

    Tool calls are assistant messages, tool results are user messages; both
    carry the ``call_id`` that pairs them.
    """

    role: str  # "user" or "assistant"
    kind: MessageKind = MessageKind.TEXT
    text: str = ""
    tool_name: Optional[str] = None
    call_id: Optional[str] = None
    arguments: dict[str, Any] = field(default_factory=dict)
    is_error: bool = False
    signature: Optional[str] = None

    @classmethod
    def user(cls, text: str) -> Message:
        return cls(role="user", text=text)

    @classmethod
    def assistant(cls, text: str) -> Message:
        return cls(role="assistant", text=text)


class AgentThread:
    """Conversation of one subtask, continued across confirmation rounds."""

    def __init__(self, window: Optional[HistoryWindow] = None):
        self.id = uuid.uuid4().hex[:8]
        self.window = window or HistoryWindow()
        self.messages: list[Message] = []
        self.turns = 0

    def __len__(self) -> int:
        return len(self.messages)

    def append(self, message: Message) -> None:
        self.messages.append(message)

    def windowed(self) -> list[Message]:
        """Messages to send with the next request.

        While the model is still using tools, the assistant turn in progress
        must keep its signed thinking block. If the tail would cut into that
        turn, the whole turn is sent, even when it is longer than the tail.
        """
        reduced = self.window.reduce(self.messages)
        start = self._open_turn_start()
        if start is None or start >= len(self.messages) - self.window.tail:
            return reduced

        head = self.window.head
        return self.messages[:head] + self.messages[max(start, head):]

    def _open_turn_start(self) -> Optional[int]:
        """Index of the thinking block opening a turn that awaits tool results."""
        i = len(self.messages)
        while i > 0 and self.messages[i - 1].kind == MessageKind.TOOL_RESULT:
            i -= 1
        if i == len(self.messages):
            return None

        while i > 0 and self.messages[i - 1].role == "assistant":
            i -= 1

        first = self.messages[i]
        if first.kind != MessageKind.REASONING or not first.signature:
            return None
        return i


# =============================================================================
# Streamed fragments
# =============================================================================


@dataclass(frozen=True)
class TextFragment:
    text: str


@dataclass(frozen=True)
class ReasoningFragment:
    text: str


@dataclass(frozen=True)
class ToolCallFragment:
    call_id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResultFragment:
    call_id: str
    name: str
    result: str = ""
    error: Optional[str] = None


Fragment = Union[TextFragment, ReasoningFragment, ToolCallFragment, ToolResultFragment]


class AgentRunner(ABC):
    """The external capability that performs the coding work."""

    @abstractmethod
    def run_turn(self, instructions: str, thread: AgentThread, user_input: str) -> Iterator[Fragment]:
        """Run one turn and stream its fragments in delivery order.

        Args:
            instructions: System instructions for the agent.
            thread: Conversation of the current subtask. The turn appends the
                user input and every produced message to it.
            user_input: New user message for this turn.

        Yields:
            Fragments as they arrive.

        Raises:
            AgentError: If the underlying model call fails.
        """
        pass


# =============================================================================
# Anthropic implementation
# =============================================================================


def _tool_call_as_text(message: Message) -> str:
    return f"[Called tool {message.tool_name} with {json.dumps(message.arguments)}]"


def _tool_result_as_text(message: Message) -> str:
    status = "failed" if message.is_error else "returned"
    return f"[Tool {message.tool_name} {status}]\n{message.text}"


def to_api_messages(messages: Sequence[Message]) -> list[dict[str, Any]]:
    """Convert a (possibly windowed) conversation to Messages API format.

    Windowing can separate a tool call from its result. Such halves are sent
    as plain text, since the API rejects unpaired tool blocks. Consecutive
    messages of the same role are merged into one API message.
    """
    call_ids = {m.call_id for m in messages if m.kind == MessageKind.TOOL_CALL}
    result_ids = {m.call_id for m in messages if m.kind == MessageKind.TOOL_RESULT}

    api: list[dict[str, Any]] = []

    for message in messages:
        starts_turn = not api or api[-1]["role"] != message.role
        block: Optional[dict[str, Any]] = None

        if message.kind == MessageKind.TEXT:
            if message.text:
                block = {"type": "text", "text": message.text}

        elif message.kind == MessageKind.REASONING:
            # Thinking blocks are only valid (and only needed) at the start of an assistant turn
            if message.signature and starts_turn:
                block = {"type": "thinking", "thinking": message.text, "signature": message.signature}

        elif message.kind == MessageKind.TOOL_CALL:
            if message.call_id in result_ids:
                block = {
                    "type": "tool_use",
                    "id": message.call_id,
                    "name": message.tool_name,
                    "input": message.arguments,
                }
            else:
                block = {"type": "text", "text": _tool_call_as_text(message)}

        elif message.kind == MessageKind.TOOL_RESULT:
            if message.call_id in call_ids:
                block = {
                    "type": "tool_result",
                    "tool_use_id": message.call_id,
                    "content": message.text or "(no output)",
                    "is_error": message.is_error,
                }
            else:
                block = {"type": "text", "text": _tool_result_as_text(message)}

        if block is None:
            continue

        if starts_turn:
            api.append({"role": message.role, "content": [block]})
        else:
            api[-1]["content"].append(block)

    for entry in api:
        if entry["role"] == "user":
            # tool_result blocks must lead a user message
            entry["content"].sort(key=lambda b: b["type"] != "tool_result")

    if api and api[0]["role"] != "user":
        api.insert(0, {"role": "user", "content": [{"type": "text", "text": "(earlier conversation omitted)"}]})

    return api


class AnthropicAgent(AgentRunner):
    """Coding agent backed by the Anthropic Messages API with tool use."""

    def __init__(
        self,
        toolbox: Toolbox,
        settings: Optional[AgentSettings] = None,
        api_key: Optional[str] = None,
        client: Optional[anthropic.Anthropic] = None,
    ):
        """Initialize the agent.

        Args:
            toolbox: Tools the agent may call.
            settings: Model settings. Defaults to AgentSettings().
            api_key: Anthropic API key. If None, the SDK reads the environment.
            client: Pre-built client (tests).
        """
        self.toolbox = toolbox
        self.settings = settings or AgentSettings()
        self._api_key = api_key
        self._client = client

    @property
    def client(self) -> anthropic.Anthropic:
        """Lazy initialization of Anthropic client."""
        if self._client is None:
            kwargs: dict[str, Any] = {"api_key": self._api_key, "timeout": self.settings.timeout}
            if self.settings.base_url:
                kwargs["base_url"] = self.settings.base_url
            self._client = anthropic.Anthropic(**kwargs)
        return self._client

    def _build_request(self, instructions: str, thread: AgentThread) -> dict[str, Any]:
        windowed = thread.windowed()
        logger.debug(
            f"Sending {len(windowed)} of {len(thread)} messages "
            f"(~{format_token_count(estimate_message_tokens(windowed))}, thread {thread.id})"
        )

        request: dict[str, Any] = {
            "model": self.settings.model,
            "max_tokens": self.settings.max_tokens,
            "system": instructions,
            "messages": to_api_messages(windowed),
            "tools": self.toolbox.specs,
        }
        if self.settings.thinking_budget > 0:
            request["thinking"] = {"type": "enabled", "budget_tokens": self.settings.thinking_budget}
        return request

    def run_turn(self, instructions: str, thread: AgentThread, user_input: str) -> Iterator[Fragment]:
        thread.turns += 1
        thread.append(Message.user(user_input))

        while True:
            request = self._build_request(instructions, thread)

            try:
                with self.client.messages.stream(**request) as stream:
                    for event in stream:
                        if event.type != "content_block_delta":
                            continue
                        if event.delta.type == "text_delta":
                            yield TextFragment(event.delta.text)
                        elif event.delta.type == "thinking_delta":
                            yield ReasoningFragment(event.delta.thinking)
                    final = stream.get_final_message()
            except anthropic.APIError as e:
                raise AgentError(f"Agent request failed: {e}") from e

            tool_calls = []
            for block in final.content:
                if block.type == "thinking":
                    thread.append(Message(
                        role="assistant",
                        kind=MessageKind.REASONING,
                        text=block.thinking,
                        signature=block.signature,
                    ))
                elif block.type == "text":
                    thread.append(Message.assistant(block.text))
                elif block.type == "tool_use":
                    thread.append(Message(
                        role="assistant",
                        kind=MessageKind.TOOL_CALL,
                        tool_name=block.name,
                        call_id=block.id,
                        arguments=dict(block.input or {}),
                    ))
                    tool_calls.append(block)

            if final.stop_reason != "tool_use" or not tool_calls:
                return

            for block in tool_calls:
                arguments = dict(block.input or {})
                yield ToolCallFragment(block.id, block.name, arguments)

                error = None
                try:
                    output = self.toolbox.execute(block.name, arguments)
                except ToolError as e:
                    output = error = str(e)

                thread.append(Message(
                    role="user",
                    kind=MessageKind.TOOL_RESULT,
                    text=output,
                    tool_name=block.name,
                    call_id=block.id,
                    is_error=error is not None,
                ))
                yield ToolResultFragment(block.id, block.name, output, error)


# =============================================================================
# Mock implementation
# =============================================================================

MOCK_SUCCESS = '{"result": "success", "message": ""}'

ScriptedTurn = Union[str, Sequence[Fragment]]


class MockAgent(AgentRunner):
    """Scripted agent for mock mode and tests.

    Each scripted turn is either raw output text or an explicit fragment list.
    Once the script is exhausted every turn reports success.
    """

    def __init__(self, turns: Iterable[ScriptedTurn] = (), default: str = MOCK_SUCCESS):
        self._turns = list(turns)
        self.default = default
        self.inputs: list[str] = []
        self.threads: list[AgentThread] = []
        self.windows: list[list[Message]] = []

    def run_turn(self, instructions: str, thread: AgentThread, user_input: str) -> Iterator[Fragment]:
        thread.turns += 1
        thread.append(Message.user(user_input))
        self.inputs.append(user_input)
        self.threads.append(thread)
        self.windows.append(thread.windowed())

        turn = self._turns.pop(0) if self._turns else self.default
        fragments: Sequence[Fragment] = [TextFragment(turn)] if isinstance(turn, str) else turn

        for fragment in fragments:
            if isinstance(fragment, TextFragment):
                thread.append(Message.assistant(fragment.text))
            elif isinstance(fragment, ToolCallFragment):
                thread.append(Message(
                    role="assistant",
                    kind=MessageKind.TOOL_CALL,
                    tool_name=fragment.name,
                    call_id=fragment.call_id,
                    arguments=dict(fragment.arguments),
                ))
            elif isinstance(fragment, ToolResultFragment):
                thread.append(Message(
                    role="user",
                    kind=MessageKind.TOOL_RESULT,
                    text=fragment.result,
                    tool_name=fragment.name,
                    call_id=fragment.call_id,
                    is_error=fragment.error is not None,
                ))
            yield fragment
