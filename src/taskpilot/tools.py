"""Workspace tools exposed to the coding agent.

Every tool works relative to the project directory and refuses paths that
escape it. Tools raise on failure; the agent loop turns the exception into an
error tool result so the model can react to it.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Any, Callable, Optional

from .events import EventEmitter, EventType

logger = logging.getLogger(__name__)

MAX_OUTPUT_CHARS = 50000


class ToolError(Exception):
    """Raised when a tool cannot complete."""

    pass


TOOL_SPECS: list[dict[str, Any]] = [
    {
        "name": "report_progress",
        "description": "Report progress.",
        "input_schema": {
            "type": "object",
            "properties": {"message": {"type": "string", "description": "Message to report."}},
            "required": ["message"],
        },
    },
    {
        "name": "read_file",
        "description": "Read a text file from the project.",
        "input_schema": {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Path relative to the project root."},
                "limit": {"type": "integer", "description": "Maximum number of lines to return."},
            },
            "required": ["path"],
        },
    },
    {
        "name": "write_file",
        "description": "Create or overwrite a text file in the project.",
        "input_schema": {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Path relative to the project root."},
                "content": {"type": "string", "description": "Full file content."},
            },
            "required": ["path", "content"],
        },
    },
    {
        "name": "edit_file",
        "description": "Replace an exact, unique snippet of text in a file.",
        "input_schema": {
            "type": "object",
            "properties": {
                "path": {"type": "string"},
                "old_text": {"type": "string"},
                "new_text": {"type": "string"},
            },
            "required": ["path", "old_text", "new_text"],
        },
    },
    {
        "name": "list_directory",
        "description": "List the entries of a directory in the project.",
        "input_schema": {
            "type": "object",
            "properties": {"path": {"type": "string", "description": "Directory, default is the project root."}},
        },
    },
    {
        "name": "run_command",
        "description": "Run a shell command in the project directory and return its output.",
        "input_schema": {
            "type": "object",
            "properties": {"command": {"type": "string"}},
            "required": ["command"],
        },
    },
]


class Toolbox:
    """Executes agent tool calls against a project directory."""

    def __init__(
        self,
        root: Path,
        command_timeout: int = 120,
        emitter: Optional[EventEmitter] = None,
    ):
        """Initialize the toolbox.

        Args:
            root: Project directory all paths are resolved against.
            command_timeout: Seconds before ``run_command`` gives up.
            emitter: Event emitter for progress reports.
        """
        self.root = Path(root).resolve()
        self.command_timeout = command_timeout
        self.emitter = emitter or EventEmitter()
        self._handlers: dict[str, Callable[..., str]] = {
            "report_progress": self.report_progress,
            "read_file": self.read_file,
            "write_file": self.write_file,
            "edit_file": self.edit_file,
            "list_directory": self.list_directory,
            "run_command": self.run_command,
        }

    @property
    def specs(self) -> list[dict[str, Any]]:
        return TOOL_SPECS

    def execute(self, name: str, arguments: dict[str, Any]) -> str:
        """Dispatch a tool call by name.

        Raises:
            ToolError: If the tool is unknown or fails.
        """
        handler = self._handlers.get(name)
        if handler is None:
            raise ToolError(f"Unknown tool: {name}")

        try:
            return handler(**arguments)
        except ToolError:
            raise
        except TypeError as e:
            raise ToolError(f"Invalid arguments for {name}: {e}") from e
        except OSError as e:
            raise ToolError(f"{name} failed: {e}") from e

    def safe_path(self, path: str) -> Path:
        resolved = (self.root / path).resolve()
        if not resolved.is_relative_to(self.root):
            raise ToolError(f"Path escapes project directory: {path}")
        return resolved

    def report_progress(self, message: str) -> str:
        logger.info(f"[Agent] {message}")
        self.emitter.emit(EventType.AGENT_PROGRESS, {"message": message})
        return "Progress reported."

    def read_file(self, path: str, limit: Optional[int] = None) -> str:
        lines = self.safe_path(path).read_text(encoding="utf-8").splitlines()
        if limit:
            lines = lines[:limit]
        return "\n".join(lines)[:MAX_OUTPUT_CHARS]

    def write_file(self, path: str, content: str) -> str:
        target = self.safe_path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        return f"Wrote {len(content)} characters to {path}"

    def edit_file(self, path: str, old_text: str, new_text: str) -> str:
        target = self.safe_path(path)
        content = target.read_text(encoding="utf-8")

        count = content.count(old_text)
        if count == 0:
            raise ToolError(f"Text not found in {path}")
        if count > 1:
            raise ToolError(f"Text is not unique in {path} ({count} matches)")

        target.write_text(content.replace(old_text, new_text, 1), encoding="utf-8")
        return f"Edited {path}"

    def list_directory(self, path: str = ".") -> str:
        target = self.safe_path(path)
        if not target.is_dir():
            raise ToolError(f"Not a directory: {path}")

        entries = sorted(target.iterdir(), key=lambda p: p.name)
        return "\n".join(f"{p.name}/" if p.is_dir() else p.name for p in entries) or "(empty)"

    def run_command(self, command: str) -> str:
        try:
            result = subprocess.run(
                command,
                shell=True,
                cwd=self.root,
                capture_output=True,
                text=True,
                timeout=self.command_timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ToolError(f"Command timed out after {self.command_timeout} seconds: {command}") from e

        output = (result.stdout + result.stderr).strip() or "(no output)"
        if result.returncode != 0:
            output = f"Exit code {result.returncode}\n{output}"
        return output[:MAX_OUTPUT_CHARS]
