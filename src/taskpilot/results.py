"""Structured result extraction and parsing.

The coding agent finishes every turn with a JSON verdict:

    {"result": "success" | "failure" | "confirm", "message": "..."}

Models rarely emit the bare object, so the verdict is first cut out of the
surrounding prose (``extract_json``) and then parsed leniently
(``parse_result``): field names and the result value are matched without
regard to case, and ``//`` or ``/* */`` comments are skipped.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)


class ResultKind(str, Enum):
    """The three outcomes an agent turn can report."""

    SUCCESS = "success"
    FAILURE = "failure"
    CONFIRM = "confirm"


class MalformedResultError(ValueError):
    """Raised when agent output does not contain a usable result object."""

    pass


@dataclass(frozen=True)
class StructuredResult:
    """Parsed verdict of one agent turn.

    ``result`` keeps the normalized (lower-cased) tag as reported by the agent,
    so an unrecognized tag can still be surfaced in error messages. ``kind`` is
    None for such tags.
    """

    result: str
    message: str = ""

    @property
    def kind(self) -> Optional[ResultKind]:
        try:
            return ResultKind(self.result)
        except ValueError:
            return None

    @classmethod
    def confirm(cls, message: str) -> StructuredResult:
        return cls(ResultKind.CONFIRM.value, message)


def extract_json(text: str) -> str:
    """Cut the outermost JSON object out of free text.

    Returns the inclusive substring between the first ``{`` and the last ``}``.
    If either brace is missing, or they are out of order, the input is
    returned unchanged. Brace balance is not checked.

    Args:
        text: Raw agent output.

    Returns:
        The candidate JSON text.
    """
    if not text or not text.strip():
        return text

    first = text.find("{")
    last = text.rfind("}")

    if first >= 0 and last > first:
        return text[first:last + 1]

    return text


def strip_json_comments(text: str) -> str:
    """Remove ``//`` line comments and ``/* */`` block comments outside strings."""
    out: list[str] = []
    i = 0
    n = len(text)
    in_string = False

    while i < n:
        ch = text[i]

        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue

        if ch == '"':
            in_string = True
            out.append(ch)
            i += 1
        elif text.startswith("//", i):
            end = text.find("\n", i)
            # Keep the newline so line numbers in decode errors stay accurate
            i = n if end == -1 else end
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            if end == -1:
                raise MalformedResultError("Unterminated block comment in result")
            out.append(" ")
            i = end + 2
        else:
            out.append(ch)
            i += 1

    return "".join(out)


def _field(data: dict[str, Any], name: str) -> Any:
    for key, value in data.items():
        if isinstance(key, str) and key.lower() == name:
            return value
    return None


def parse_result(text: str) -> StructuredResult:
    """Parse a JSON result object.

    Args:
        text: JSON text, usually the output of ``extract_json``.

    Returns:
        The parsed StructuredResult. The tag may still be unrecognized; callers
        check ``kind``.

    Raises:
        MalformedResultError: If the text is not a JSON object, or its
            ``result`` field is present but not a string. A missing or null
            ``result`` yields an empty (unrecognized) tag.
    """
    try:
        data = json.loads(strip_json_comments(text))
    except json.JSONDecodeError as e:
        raise MalformedResultError(f"Result is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedResultError(f"Result must be a JSON object, got {type(data).__name__}")

    result = _field(data, "result")
    if result is None:
        # A missing tag is reported as an unrecognized one
        result = ""
    elif not isinstance(result, str):
        raise MalformedResultError(f"Result field must be a string, got {type(result).__name__}")

    message = _field(data, "message")
    if message is None:
        message = ""
    elif not isinstance(message, str):
        message = json.dumps(message)

    return StructuredResult(result=result.strip().lower(), message=message)


def parse_agent_output(raw_output: str) -> StructuredResult:
    """Extract and parse the verdict from raw agent output."""
    candidate = extract_json(raw_output)
    logger.debug(f"Raw response: {candidate}")
    return parse_result(candidate)
