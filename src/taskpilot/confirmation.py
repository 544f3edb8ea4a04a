"""Confirmation handshake between the run and an external decision-maker.

When the agent is unsure how to continue it reports a ``confirm`` result. The
run then suspends on a single ConfirmationExchange until a Confirmer (a human
at the terminal, or an automated approver) answers it with a decision and an
optional message.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Optional

from rich.console import Console

from .cancellation import check_cancelled
from .events import EventEmitter, EventType

logger = logging.getLogger(__name__)

DEFAULT_APPROVE_TEXT = "Request confirmed. Proceed with the task."
DEFAULT_DENY_TEXT = "Request denied. Abort the task."


class ConfirmationError(Exception):
    """Raised when the confirmation protocol is used out of order."""

    pass


@dataclass(frozen=True)
class ConfirmRequest:
    """Advisory text shown to the decision-maker."""

    text: str


@dataclass(frozen=True)
class ConfirmResponse:
    """Decision for a ConfirmRequest."""

    text: str
    approved: bool

    @classmethod
    def approve(cls, text: Optional[str] = None) -> ConfirmResponse:
        return cls(text or DEFAULT_APPROVE_TEXT, True)

    @classmethod
    def deny(cls, text: Optional[str] = None) -> ConfirmResponse:
        return cls(text or DEFAULT_DENY_TEXT, False)


def default_text(approved: bool) -> str:
    return DEFAULT_APPROVE_TEXT if approved else DEFAULT_DENY_TEXT


class ConfirmationExchange:
    """A single request paired with at most one response."""

    def __init__(self, request: ConfirmRequest):
        self.request = request
        self._response: Optional[ConfirmResponse] = None

    @property
    def response(self) -> ConfirmResponse:
        if self._response is None:
            raise ConfirmationError("Confirmation request has not been answered yet")
        return self._response

    def respond(self, response: ConfirmResponse) -> None:
        """Record the answer. An exchange can only be answered once."""
        if self._response is not None:
            raise ConfirmationError("Confirmation request has already been answered")

        text = response.text.strip() if response.text else ""
        if not text:
            response = ConfirmResponse(default_text(response.approved), response.approved)
        self._response = response


class Confirmer(ABC):
    """The external actor that answers confirmation requests."""

    @abstractmethod
    def ask(self, request: ConfirmRequest) -> ConfirmResponse:
        """Block until a decision for the request is available."""
        pass


class ConsoleConfirmer(Confirmer):
    """Asks the user at the terminal."""

    def __init__(self, console: Optional[Console] = None, project_name: str = ""):
        self.console = console or Console()
        self.project_name = project_name

    def ask(self, request: ConfirmRequest) -> ConfirmResponse:
        self.console.print()
        self.console.print(
            f"[bold yellow]\\[Needs Confirmation][/bold yellow]"
            f"[bold]\\[{self.project_name}][/bold]: {request.text}",
            highlight=False,
        )
        self.console.print()
        self.console.print("Do you want to proceed? (Y/N)")

        answer = ""
        while answer not in ("Y", "N"):
            answer = self.console.input().strip().upper()
            if answer not in ("Y", "N"):
                self.console.print("Please enter either 'Y' or 'N'.")

        approved = answer == "Y"

        self.console.print()
        self.console.print("Enter your message (optional):")
        message = self.console.input().strip()

        return ConfirmResponse(message or default_text(approved), approved)


class AutoConfirmer(Confirmer):
    """Answers every request the same way without asking anyone."""

    def __init__(self, approved: bool = True, text: Optional[str] = None):
        self.approved = approved
        self.text = text

    def ask(self, request: ConfirmRequest) -> ConfirmResponse:
        logger.info(f"Auto-{'approving' if self.approved else 'denying'} confirmation: {request.text}")
        if self.approved:
            return ConfirmResponse.approve(self.text)
        return ConfirmResponse.deny(self.text)


class MockConfirmer(Confirmer):
    """Replays scripted responses and records the requests it received."""

    def __init__(self, responses: Iterable[ConfirmResponse] = ()):
        self._responses = list(responses)
        self.requests: list[ConfirmRequest] = []

    def ask(self, request: ConfirmRequest) -> ConfirmResponse:
        self.requests.append(request)
        if not self._responses:
            raise ConfirmationError(f"No scripted response left for: {request.text}")
        return self._responses.pop(0)


class ConfirmationChannel:
    """Runs confirmation exchanges strictly one at a time."""

    def __init__(self, confirmer: Confirmer, emitter: Optional[EventEmitter] = None):
        self.confirmer = confirmer
        self.emitter = emitter or EventEmitter()
        self._pending: Optional[ConfirmationExchange] = None
        self._lock = threading.Lock()

    def request(
        self,
        text: str,
        task: str = "",
        cancel: Optional[threading.Event] = None,
    ) -> ConfirmResponse:
        """Ask the confirmer and wait for the answer.

        Cancellation is only observed before and after ``confirmer.ask``. A
        blocking confirmer such as ConsoleConfirmer is not interrupted while
        it waits; KeyboardInterrupt is the way to abort that wait.

        Args:
            text: Advisory text for the decision-maker.
            task: Name of the subtask that raised the request (for events).
            cancel: Optional cancellation event, checked before and after the wait.

        Returns:
            The response, with an empty message replaced by the default text.

        Raises:
            ConfirmationError: If another exchange is still outstanding.
            RunCancelled: If the run was cancelled around the wait.
        """
        with self._lock:
            if self._pending is not None:
                raise ConfirmationError(
                    f"A confirmation is already outstanding: {self._pending.request.text}"
                )
            exchange = ConfirmationExchange(ConfirmRequest(text))
            self._pending = exchange

        try:
            logger.debug(f"Requesting user confirmation: {text}")
            self.emitter.emit(EventType.CONFIRMATION_REQUESTED, {"task": task, "text": text})

            check_cancelled(cancel, "waiting for confirmation")
            exchange.respond(self.confirmer.ask(exchange.request))
            check_cancelled(cancel, "waiting for confirmation")

            response = exchange.response
            self.emitter.emit(
                EventType.CONFIRMATION_ANSWERED,
                {"task": task, "text": response.text, "approved": response.approved},
            )
            return response
        finally:
            with self._lock:
                self._pending = None
