"""File-system backed work list.

A work list is a directory tree with two levels:

    tasks/
        01-setup/           <- task (immediate subdirectory)
            01-deps.md      <- subtask (file with the subtask extension)
            02-layout.md
        02-port-models/
            01-entities.md

Tasks and subtasks are ordered by name. A missing directory or an empty
listing is a setup error: nothing has been dispatched yet, so the run stops
before any work starts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)

DEFAULT_SUBTASK_EXTENSION = ".md"

PathLike = Union[str, Path]


class SetupError(Exception):
    """Exception raised when the work list cannot be loaded."""

    pass


class WorksetNotFoundError(SetupError, FileNotFoundError):
    """A task root or task directory does not exist."""

    pass


class EmptyWorksetError(SetupError):
    """A directory exists but holds no tasks or no subtasks."""

    pass


@dataclass(frozen=True)
class Subtask:
    """A unit of work backed by a prompt file."""

    title: str
    path: Path

    @classmethod
    def from_path(cls, path: PathLike) -> Subtask:
        path = Path(path)
        return cls(title=path.stem, path=path)


@dataclass(frozen=True)
class Task:
    """A named group of subtasks."""

    title: str
    path: Path
    subtasks: tuple[Subtask, ...] = field(default_factory=tuple)


def _require_dir(path: Path) -> None:
    if not path.is_dir():
        raise WorksetNotFoundError(f"Directory '{path}' does not exist.")


def list_tasks(root: PathLike) -> list[Path]:
    """List task directories under ``root`` ordered by name.

    Raises:
        WorksetNotFoundError: If ``root`` is not a directory.
        EmptyWorksetError: If ``root`` has no subdirectories.
    """
    root = Path(root)
    _require_dir(root)

    tasks = sorted((p for p in root.iterdir() if p.is_dir()), key=lambda p: p.name)
    if not tasks:
        raise EmptyWorksetError(f"No tasks are found in the directory '{root}'.")

    return tasks


def list_subtasks(task_dir: PathLike, extension: str = DEFAULT_SUBTASK_EXTENSION) -> list[Subtask]:
    """List subtask files of a task ordered by name.

    Args:
        task_dir: The task directory.
        extension: File extension of subtask files, with or without the dot.

    Raises:
        WorksetNotFoundError: If ``task_dir`` is not a directory.
        EmptyWorksetError: If no subtask files are found.
    """
    task_dir = Path(task_dir)
    _require_dir(task_dir)

    suffix = extension if extension.startswith(".") else f".{extension}"
    files = sorted(
        (p for p in task_dir.iterdir() if p.is_file() and p.suffix == suffix),
        key=lambda p: p.name,
    )
    if not files:
        raise EmptyWorksetError(f"No subtasks are found in the directory '{task_dir}'.")

    return [Subtask.from_path(p) for p in files]


def load_workset(root: PathLike, extension: str = DEFAULT_SUBTASK_EXTENSION) -> list[Task]:
    """Load the whole work list, e.g. for display.

    The orchestrator does not use this: it lists subtasks lazily, when it
    enters a task, so a broken later task only fails once it is reached.
    """
    return [
        Task(title=path.name, path=path, subtasks=tuple(list_subtasks(path, extension)))
        for path in list_tasks(root)
    ]
