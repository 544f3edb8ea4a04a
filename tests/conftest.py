"""Shared test fixtures for taskpilot tests."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from taskpilot.config import Config


def write_workset(root: Path, layout: dict[str, list[str]]) -> Path:
    """Create task directories with subtask prompt files under ``root``."""
    root.mkdir(parents=True, exist_ok=True)
    for task, subtasks in layout.items():
        task_dir = root / task
        task_dir.mkdir()
        for subtask in subtasks:
            (task_dir / subtask).write_text(f"Work on {task}/{subtask} in {{{{ projectname }}}}.\n")
    return root


@pytest.fixture
def make_workset(tmp_path: Path) -> Callable[[dict[str, list[str]]], Path]:
    """Factory building a task tree in a fresh directory."""
    counter = {"n": 0}

    def _make(layout: dict[str, list[str]]) -> Path:
        counter["n"] += 1
        return write_workset(tmp_path / f"tasks{counter['n']}", layout)

    return _make


@pytest.fixture
def program_dir(tmp_path: Path) -> Path:
    """Program directory with instructions, two tasks of two subtasks each and references."""
    root = tmp_path / "program"
    (root / "prompts" / "system").mkdir(parents=True)
    (root / "references").mkdir()

    (root / "prompts" / "system" / "coding.md").write_text(
        "You are porting {{ projectname }} at {{ projectdir }}.\n"
        "References: {{ referencesdir }}\n"
        'Finish with {"result": "success|failure|confirm", "message": "..."}.\n'
    )
    write_workset(root / "prompts" / "tasks", {"A": ["1.md", "2.md"], "B": ["1.md", "2.md"]})
    return root


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Target project the agent works on."""
    project = tmp_path / "legacy-app"
    project.mkdir()
    (project / "main.py").write_text('print("Hello, World!")\n')
    return project


@pytest.fixture
def mock_config(program_dir: Path) -> Config:
    """Create a mock configuration for testing."""
    return Config(program_dir=program_dir, mock_mode=True)
