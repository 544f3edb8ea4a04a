"""Task/subtask orchestrator.

Walks the work list strictly in order and hands one subtask at a time to the
coding step. Control flow is expressed as signals processed from a queue:

    RunSubtask(subtask)  -> coding step runs the subtask
    SubtaskAdvance       -> next subtask of the current task, or TaskAdvance
    TaskAdvance          -> first subtask of the next task, or RunOutput
    RunOutput            -> terminal summary; the run is over

The cursor ``(task_index, subtask_index)`` is the only mutable state. It starts
at the offsets given to ``start`` and moves forward by one per completed
subtask. A failure is never retried here: it propagates and halts the run.
A declined confirmation parks the run on the current subtask.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from .agent import AgentError
from .coding import CodingStep, TaskFailure
from .events import EventEmitter, EventType
from .task_manager import DEFAULT_SUBTASK_EXTENSION, PathLike, Subtask, list_subtasks, list_tasks

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunSubtask:
    subtask: Subtask


@dataclass(frozen=True)
class SubtaskAdvance:
    pass


@dataclass(frozen=True)
class TaskAdvance:
    pass


@dataclass(frozen=True)
class RunOutput:
    text: str
    task_count: int


Signal = Union[RunSubtask, SubtaskAdvance, TaskAdvance, RunOutput]


def format_offset(task_index: int, subtask_index: int) -> str:
    """Format a cursor as the ``task:subtask`` offset accepted by the CLI."""
    return f"{task_index}:{subtask_index}"


class RunStatus(str, Enum):
    COMPLETED = "completed"
    PARKED = "parked"


@dataclass
class RunResult:
    """Outcome of ``Orchestrator.start``.

    For a parked run ``task_index``/``subtask_index`` point at the subtask that
    was declined, which is where a restart should begin.
    """

    status: RunStatus
    task_count: int
    subtasks_completed: int = 0
    dispatched: list[str] = field(default_factory=list)
    summary: Optional[str] = None
    task_index: int = 0
    subtask_index: int = 0

    @property
    def offset(self) -> str:
        return format_offset(self.task_index, self.subtask_index)


class Orchestrator:
    """Sequences tasks and subtasks through a coding step."""

    def __init__(
        self,
        step: CodingStep,
        subtask_extension: str = DEFAULT_SUBTASK_EXTENSION,
        emitter: Optional[EventEmitter] = None,
    ):
        """Initialize the orchestrator.

        Args:
            step: Runs individual subtasks.
            subtask_extension: Extension of subtask files inside task directories.
            emitter: Event emitter for observability.
        """
        self.step = step
        self.subtask_extension = subtask_extension
        self.emitter = emitter or EventEmitter()

        self.tasks: list[Path] = []
        self.subtasks: list[Subtask] = []
        self.task_index = 0
        self.subtask_index = 0

        self._running = False

    @property
    def cursor(self) -> tuple[int, int]:
        return self.task_index, self.subtask_index

    @property
    def current_task(self) -> Path:
        return self.tasks[self.task_index]

    def start(
        self,
        root: PathLike,
        start_task: int = 0,
        start_subtask: int = 0,
        cancel: Optional[threading.Event] = None,
    ) -> RunResult:
        """Run the work list under ``root`` from the given offsets.

        A negative offset raises IndexError before any dispatch; an offset past
        the end raises IndexError when the list is indexed.

        Args:
            root: Directory containing one subdirectory per task.
            start_task: Index of the first task to run.
            start_subtask: Index of the first subtask within that task.
            cancel: Optional cancellation event passed to the coding step.

        Returns:
            RunResult, COMPLETED after the last subtask of the last task or
            PARKED when a confirmation was declined.

        Raises:
            SetupError: If the root or a task directory is missing or empty.
            TaskFailure: If the agent reports a failure.
            AgentError: If the agent capability fails.
            RunCancelled: If ``cancel`` is set.
        """
        if self._running:
            raise RuntimeError("Orchestrator is already running")

        root = Path(root)
        logger.info(f"Reading tasks from: {root}")

        self.tasks = list_tasks(root)
        self.emitter.emit(EventType.TASK_LIST, {"tasks": [t.name for t in self.tasks]})

        logger.info(f"{len(self.tasks)} tasks found: ")
        for task in self.tasks:
            logger.info(f" * {task.name}")

        if start_task < 0 or start_subtask < 0:
            raise IndexError(f"Start offset {format_offset(start_task, start_subtask)} is negative")

        self.task_index = start_task
        result = RunResult(status=RunStatus.COMPLETED, task_count=len(self.tasks))
        self._running = True

        try:
            return self._run(deque([self._enter_task(start_subtask)]), result, cancel)
        finally:
            self._running = False

    def _run(self, queue: deque[Signal], result: RunResult, cancel: Optional[threading.Event]) -> RunResult:
        while queue:
            signal = queue.popleft()

            if isinstance(signal, RunSubtask):
                result.dispatched.append(f"{self.current_task.name}/{signal.subtask.title}")

                try:
                    outcome = self.step.run(signal.subtask, cancel)
                except (TaskFailure, AgentError) as e:
                    self.emitter.emit(EventType.ERROR, {"message": str(e), "offset": format_offset(*self.cursor)})
                    raise

                if not outcome.completed:
                    result.status = RunStatus.PARKED
                    result.task_index, result.subtask_index = self.cursor
                    logger.info(f"Run parked on subtask {signal.subtask.title} (offset {result.offset})")
                    self.emitter.emit(EventType.RUN_PARKED, {"task": signal.subtask.title, "offset": result.offset})
                    return result

                result.subtasks_completed += 1
                self.emitter.emit(
                    EventType.SUBTASK_COMPLETE,
                    {"title": signal.subtask.title, "turns": outcome.turns, "confirmations": outcome.confirmations},
                )
                queue.append(SubtaskAdvance())

            elif isinstance(signal, SubtaskAdvance):
                queue.append(self.on_subtask_advance())

            elif isinstance(signal, TaskAdvance):
                queue.append(self.on_task_advance())

            elif isinstance(signal, RunOutput):
                logger.info(f"Workflow completed successfully: {signal.text}")
                result.summary = signal.text
                return result

        return result

    def _enter_task(self, start_subtask: int = 0) -> RunSubtask:
        task_dir = self.current_task
        logger.info(f"Reading subtasks from: {task_dir}")

        self.subtasks = list_subtasks(task_dir, self.subtask_extension)

        logger.info(f"{len(self.subtasks)} subtasks found: ")
        for subtask in self.subtasks:
            logger.info(f" * {subtask.title}")

        self.subtask_index = start_subtask
        self.emitter.emit(EventType.TASK_START, {"title": task_dir.name, "index": self.task_index})
        self.emitter.emit(EventType.SUBTASK_LIST, {"subtasks": [s.title for s in self.subtasks]})

        return self._dispatch()

    def _dispatch(self) -> RunSubtask:
        subtask = self.subtasks[self.subtask_index]
        self.emitter.emit(EventType.SUBTASK_START, {"title": subtask.title, "index": self.subtask_index})
        return RunSubtask(subtask)

    def on_subtask_advance(self) -> Signal:
        """Move to the next subtask, or signal TaskAdvance when the task is done."""
        count = len(self.subtasks)

        if self.subtask_index >= count - 1:
            logger.info(f"All {count} subtasks have been completed successfully.")
            self.emitter.emit(EventType.TASK_COMPLETE, {"title": self.current_task.name, "index": self.task_index})
            self.subtasks = []
            self.subtask_index = 0
            return TaskAdvance()

        self.subtask_index += 1
        logger.info(f"Requesting to process the next subtask: {self.subtasks[self.subtask_index].path}")
        return self._dispatch()

    def on_task_advance(self) -> Signal:
        """Enter the next task, or produce the terminal output when all are done."""
        count = len(self.tasks)

        if self.task_index >= count - 1:
            logger.info("No more tasks to process.")
            text = f"{count} tasks completed successfully."
            self.emitter.emit(EventType.RUN_COMPLETE, {"summary": text, "task_count": count})
            self.tasks = []
            self.task_index = 0
            self.subtask_index = 0
            return RunOutput(text, count)

        self.task_index += 1
        logger.info(f"Requesting to process the next task: {self.current_task.name}")
        return self._enter_task(0)
