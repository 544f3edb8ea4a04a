"""Coding step: drives the agent through one subtask.

The step renders the subtask prompt, runs agent turns on a fresh thread and
reads the verdict at the end of every turn:

- ``success`` completes the subtask.
- ``failure`` (or an unknown verdict) raises TaskFailure and stops the run.
- ``confirm`` asks the decision-maker. An approval is sent back to the agent
  as the next user input on the same thread; a denial parks the subtask.

Output without a parseable verdict is treated as ``confirm`` with a fixed
advisory message, so a human decides whether the work can continue.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, Mapping, Optional

from .agent import (
    AgentRunner,
    AgentThread,
    Fragment,
    ReasoningFragment,
    TextFragment,
    ToolCallFragment,
    ToolResultFragment,
)
from .cancellation import check_cancelled
from .confirmation import ConfirmationChannel
from .events import EventEmitter, EventType
from .history import HistoryWindow
from .prompts import render_prompt
from .results import MalformedResultError, ResultKind, StructuredResult, parse_agent_output
from .task_manager import Subtask
from .tokens import estimate_tokens, format_token_count

logger = logging.getLogger(__name__)

MALFORMED_RESULT_MESSAGE = (
    "The task was stopped unexpectedly. The result may be incomplete."
    "  - Current task: {task}"
)


class TaskFailure(Exception):
    """The agent reported a failure, or a verdict that is not understood."""

    def __init__(self, task: str, message: str):
        self.task = task
        self.message = message
        super().__init__(f'Task "{task}" failed with message: {message}')


class StepOutcome(str, Enum):
    COMPLETED = "completed"
    DECLINED = "declined"


@dataclass
class StepResult:
    """How a subtask ended."""

    task: str
    outcome: StepOutcome
    turns: int = 0
    confirmations: int = 0

    @property
    def completed(self) -> bool:
        return self.outcome == StepOutcome.COMPLETED


class CodingStep:
    """Runs a single subtask to a terminal verdict."""

    def __init__(
        self,
        agent: AgentRunner,
        instructions: str,
        confirmations: ConfirmationChannel,
        prompt_context: Optional[Mapping[str, Any]] = None,
        history: Optional[HistoryWindow] = None,
        emitter: Optional[EventEmitter] = None,
    ):
        """Initialize the coding step.

        Args:
            agent: Agent capability running the turns.
            instructions: Rendered coding instructions (system prompt).
            confirmations: Channel used for ``confirm`` verdicts.
            prompt_context: Template variables for subtask prompts.
            history: Window applied to the conversation before each request.
            emitter: Event emitter for observability.
        """
        self.agent = agent
        self.instructions = instructions
        self.confirmations = confirmations
        self.prompt_context = dict(prompt_context or {})
        self.history = history or HistoryWindow()
        self.emitter = emitter or EventEmitter()

    def run(self, subtask: Subtask, cancel: Optional[threading.Event] = None) -> StepResult:
        """Run a subtask until it succeeds, fails or is declined.

        Args:
            subtask: The subtask to work on.
            cancel: Optional cancellation event.

        Returns:
            StepResult with outcome COMPLETED or DECLINED.

        Raises:
            TaskFailure: On a ``failure`` or unknown verdict.
            AgentError: If the agent capability fails.
            RunCancelled: If ``cancel`` is set while waiting.
        """
        task = subtask.title
        user_input = render_prompt(subtask.path, self.prompt_context)

        logger.info(f"Starting task: {task}")
        logger.debug("Creating a new thread for the agent.")

        thread = AgentThread(self.history)
        result = StepResult(task=task, outcome=StepOutcome.DECLINED)

        while True:
            check_cancelled(cancel, "starting an agent turn")
            result.turns += 1

            raw_output = self.drain(
                self.agent.run_turn(self.instructions, thread, user_input),
                cancel,
            )
            logger.debug(
                f"Thread {thread.id} holds {len(thread)} messages "
                f"(~{format_token_count(estimate_tokens(raw_output))} in this turn's output)"
            )

            verdict = self.interpret(raw_output, task)
            kind = verdict.kind

            if kind == ResultKind.SUCCESS:
                logger.info(f'Task "{task}" completed successfully.')
                result.outcome = StepOutcome.COMPLETED
                return result

            if kind == ResultKind.FAILURE:
                raise TaskFailure(task, verdict.message)

            if kind is None:
                raise TaskFailure(task, f'Unknown result: "{verdict.result}"')

            response = self.confirmations.request(verdict.message, task=task, cancel=cancel)
            result.confirmations += 1

            if not response.approved:
                logger.info(f"User declined to proceed. Cancelling the task: {task}")
                return result

            logger.info(f"Received a confirmation to proceed: {response.text}")
            logger.debug("Using existing thread for the agent.")
            user_input = response.text

    def interpret(self, raw_output: str, task: str) -> StructuredResult:
        """Parse the verdict, converting unparseable output into ``confirm``."""
        try:
            return parse_agent_output(raw_output)
        except MalformedResultError as e:
            logger.warning(f"Failed to deserialize the response ({e}): {raw_output}")
            self.emitter.emit(EventType.MALFORMED_RESULT, {"task": task, "error": str(e), "output": raw_output})
            return StructuredResult.confirm(MALFORMED_RESULT_MESSAGE.format(task=task))

    def drain(self, fragments: Iterator[Fragment], cancel: Optional[threading.Event] = None) -> str:
        """Consume a turn's fragment stream completely.

        Text fragments are concatenated in arrival order and returned.
        Everything else is only logged.
        """
        text_parts: list[str] = []
        reasoning: list[str] = []

        def flush_reasoning() -> None:
            if reasoning:
                logger.info("".join(reasoning))
                reasoning.clear()

        try:
            for fragment in fragments:
                check_cancelled(cancel, "waiting for the agent")

                if isinstance(fragment, ReasoningFragment):
                    reasoning.append(fragment.text)
                    continue

                flush_reasoning()

                if isinstance(fragment, TextFragment):
                    text_parts.append(fragment.text)

                elif isinstance(fragment, ToolCallFragment):
                    logger.debug(f"[FuncCall][{fragment.call_id}] {fragment.name}({fragment.arguments})")
                    self.emitter.emit(EventType.TOOL_CALL, {"call_id": fragment.call_id, "name": fragment.name})

                elif isinstance(fragment, ToolResultFragment):
                    if fragment.error is None:
                        logger.debug(f"[FuncResult][{fragment.call_id}] The function returned {fragment.result[:500]}")
                    else:
                        logger.warning(
                            f"[FuncResult][{fragment.call_id}] The function threw an exception: {fragment.error}"
                        )
                        self.emitter.emit(
                            EventType.TOOL_WARNING,
                            {"call_id": fragment.call_id, "name": fragment.name, "error": fragment.error},
                        )
        finally:
            close = getattr(fragments, "close", None)
            if close is not None:
                close()

        flush_reasoning()
        return "".join(text_parts)
