"""Session logging for a taskpilot run.

RunLogger subscribes to the run's EventEmitter, keeps running statistics and
writes a JSON session file when the run ends.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.console import Console

from .events import Event, EventEmitter, EventType

logger = logging.getLogger(__name__)


@dataclass
class RunStats:
    """Statistics for a run."""

    start_time: datetime = field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    tasks_completed: int = 0
    subtasks_started: int = 0
    subtasks_completed: int = 0
    confirmations_requested: int = 0
    confirmations_approved: int = 0
    confirmations_denied: int = 0
    tool_calls: int = 0
    tool_failures: int = 0
    malformed_results: int = 0

    @property
    def duration_seconds(self) -> float:
        """Get duration in seconds."""
        end = self.end_time or datetime.now()
        return (end - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_seconds": self.duration_seconds,
            "tasks_completed": self.tasks_completed,
            "subtasks": {
                "started": self.subtasks_started,
                "completed": self.subtasks_completed,
            },
            "confirmations": {
                "requested": self.confirmations_requested,
                "approved": self.confirmations_approved,
                "denied": self.confirmations_denied,
            },
            "tools": {
                "calls": self.tool_calls,
                "failures": self.tool_failures,
            },
            "malformed_results": self.malformed_results,
        }


class RunLogger:
    """Collects run events into statistics and a JSON session file."""

    def __init__(
        self,
        log_dir: Optional[Path] = None,
        project_name: str = "run",
    ):
        """Initialize the run logger.

        Args:
            log_dir: Directory for log files. Defaults to logs/.
            project_name: Name of the project being worked on.
        """
        self.log_dir = log_dir or Path("logs")
        self.project_name = project_name
        self.stats = RunStats()

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        safe_project = "".join(c if c.isalnum() else "_" for c in project_name[:30])
        self.log_file = self.log_dir / f"{timestamp}_{safe_project}.json"

        self.log_data: dict = {
            "session": {
                "id": timestamp,
                "project": project_name,
                "start_time": datetime.now().isoformat(),
            },
            "events": [],
            "errors": [],
        }

    def attach(self, emitter: EventEmitter) -> None:
        """Subscribe to an emitter."""
        emitter.subscribe(self.handle)

    def handle(self, event: Event) -> None:
        """Record a single event."""
        stats = self.stats

        if event.type == EventType.SUBTASK_START:
            stats.subtasks_started += 1
        elif event.type == EventType.SUBTASK_COMPLETE:
            stats.subtasks_completed += 1
        elif event.type == EventType.TASK_COMPLETE:
            stats.tasks_completed += 1
        elif event.type == EventType.CONFIRMATION_REQUESTED:
            stats.confirmations_requested += 1
        elif event.type == EventType.CONFIRMATION_ANSWERED:
            if event.data.get("approved"):
                stats.confirmations_approved += 1
            else:
                stats.confirmations_denied += 1
        elif event.type == EventType.TOOL_CALL:
            stats.tool_calls += 1
        elif event.type == EventType.TOOL_WARNING:
            stats.tool_failures += 1
        elif event.type == EventType.MALFORMED_RESULT:
            stats.malformed_results += 1
        elif event.type == EventType.ERROR:
            self.log_data["errors"].append({
                "timestamp": event.timestamp,
                "error": event.data.get("message", ""),
            })

        # Tool calls are counted, not listed
        if event.type != EventType.TOOL_CALL:
            self.log_data["events"].append(event.to_dict())

    def finalize(self, status: str, summary: Optional[str] = None) -> None:
        """Finalize the log and write to file."""
        self.stats.end_time = datetime.now()

        self.log_data["session"]["end_time"] = self.stats.end_time.isoformat()
        self.log_data["session"]["status"] = status
        self.log_data["session"]["summary"] = summary
        self.log_data["stats"] = self.stats.to_dict()

        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with open(self.log_file, "w", encoding="utf-8") as f:
                json.dump(self.log_data, f, indent=2, default=str)
            logger.info(f"Run log written to: {self.log_file}")
        except OSError as e:
            logger.error(f"Failed to write run log: {e}")

    def print_summary(self, console: Optional[Console] = None) -> None:
        """Print a summary of the run."""
        console = console or Console()
        stats = self.stats

        console.rule("[bold]Run summary[/bold]")
        console.print(f"Project: {self.project_name}")
        console.print(f"Duration: {stats.duration_seconds:.1f}s")
        console.print(f"Tasks completed: {stats.tasks_completed}")
        console.print(f"Subtasks: {stats.subtasks_completed}/{stats.subtasks_started} completed")
        console.print(
            f"Confirmations: {stats.confirmations_requested} requested "
            f"({stats.confirmations_approved} approved, {stats.confirmations_denied} denied)"
        )
        console.print(f"Tool calls: {stats.tool_calls} ({stats.tool_failures} failed)")
        console.print(f"Malformed results: {stats.malformed_results}")
        console.print(f"Log file: {self.log_file}")
        console.rule()
