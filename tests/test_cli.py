"""Tests for CLI entrypoint."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from taskpilot.agent import MockAgent
from taskpilot.cli import app, parse_range

runner = CliRunner()


def flat(output: str) -> str:
    """Collapse whitespace so console line wrapping does not matter."""
    return " ".join(output.split())


@pytest.fixture(autouse=True)
def no_dotenv(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("taskpilot.config.load_dotenv", lambda: None)
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.delenv("TASKPILOT_MOCK_MODE", raising=False)
    monkeypatch.delenv("TASKPILOT_AUTO_APPROVE", raising=False)


class TestParseRange:
    """Tests for parse_range."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, (0, 0)),
            ("", (0, 0)),
            ("2", (2, 0)),
            ("1:2", (1, 2)),
            (" 1 : 1 ", (1, 1)),
            ("x:3", (0, 3)),
            ("1:y", (1, 0)),
        ],
    )
    def test_parse(self, value, expected) -> None:
        assert parse_range(value) == expected


class TestCLI:
    """Tests for CLI commands."""

    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert "taskpilot version 0.1.0" in result.stdout

    def test_run_help(self) -> None:
        result = runner.invoke(app, ["run", "--help"])

        assert result.exit_code == 0
        assert "--config-dir" in result.stdout
        assert "--mock" in result.stdout
        assert "--yes" in result.stdout

    def test_run_mock(self, program_dir: Path, project_dir: Path) -> None:
        result = runner.invoke(
            app, ["run", str(project_dir), "--config-dir", str(program_dir), "--mock", "--yes"]
        )

        assert result.exit_code == 0
        assert "2 tasks completed successfully." in flat(result.stdout)
        assert "Run summary" in result.stdout

    def test_run_invalid_project(self, program_dir: Path, tmp_path: Path) -> None:
        result = runner.invoke(
            app, ["run", str(tmp_path / "nonexistent"), "--config-dir", str(program_dir), "--mock"]
        )

        assert result.exit_code == 1
        assert "does not exist" in flat(result.stdout)

    def test_run_requires_api_key(self, program_dir: Path, project_dir: Path) -> None:
        result = runner.invoke(app, ["run", str(project_dir), "--config-dir", str(program_dir)])

        assert result.exit_code == 1
        assert "ANTHROPIC_API_KEY" in result.stdout

    def test_run_offset_out_of_range(self, program_dir: Path, project_dir: Path) -> None:
        result = runner.invoke(
            app, ["run", str(project_dir), "5", "--config-dir", str(program_dir), "--mock", "--yes"]
        )

        assert result.exit_code == 1
        assert "out of range" in flat(result.stdout)

    def test_run_negative_offset(self, program_dir: Path, project_dir: Path) -> None:
        result = runner.invoke(
            app, ["run", str(project_dir), "0:-1", "--config-dir", str(program_dir), "--mock", "--yes"]
        )

        assert result.exit_code == 1
        assert "Start offset 0:-1 is out of range." in flat(result.stdout)
        assert "completed successfully" not in result.stdout

    def test_run_missing_subtasks(self, program_dir: Path, project_dir: Path) -> None:
        (program_dir / "prompts" / "tasks" / "C").mkdir()

        result = runner.invoke(
            app, ["run", str(project_dir), "--config-dir", str(program_dir), "--mock", "--yes"]
        )

        assert result.exit_code == 1
        assert "Setup error" in result.stdout

    def test_run_failure(self, program_dir: Path, project_dir: Path) -> None:
        agent = MockAgent(['{"result": "failure", "message": "Tests fail."}'])

        with patch("taskpilot.launcher.MockAgent", return_value=agent):
            result = runner.invoke(
                app, ["run", str(project_dir), "--config-dir", str(program_dir), "--mock", "--yes"]
            )

        assert result.exit_code == 1
        assert "failed with message: Tests fail." in flat(result.stdout)

    def test_run_declined_confirmation(self, program_dir: Path, project_dir: Path) -> None:
        agent = MockAgent(['{"result": "success"}', '{"result": "confirm", "message": "Drop the table?"}'])

        with patch("taskpilot.launcher.MockAgent", return_value=agent):
            result = runner.invoke(
                app,
                ["run", str(project_dir), "--config-dir", str(program_dir), "--mock"],
                input="N\n\n",
            )

        assert result.exit_code == 0
        output = flat(result.stdout)
        assert "Drop the table?" in output
        assert "Resume with: taskpilot run" in output
        assert "0:1" in output

    def test_run_approved_confirmation(self, program_dir: Path, project_dir: Path) -> None:
        agent = MockAgent(['{"result": "confirm", "message": "Drop the table?"}'])

        with patch("taskpilot.launcher.MockAgent", return_value=agent):
            result = runner.invoke(
                app,
                ["run", str(project_dir), "--config-dir", str(program_dir), "--mock"],
                input="y\nKeep a backup.\n",
            )

        assert result.exit_code == 0
        assert agent.inputs[1] == "Keep a backup."
        assert "2 tasks completed successfully." in flat(result.stdout)

    def test_list(self, program_dir: Path) -> None:
        result = runner.invoke(app, ["list", "--config-dir", str(program_dir)])

        assert result.exit_code == 0
        assert "0:1" in result.stdout
        assert "1:0" in result.stdout
        assert "2 tasks, 4 subtasks" in result.stdout

    def test_list_missing_tasks(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["list", "--config-dir", str(tmp_path)])

        assert result.exit_code == 1
        assert "does not exist" in flat(result.stdout)
