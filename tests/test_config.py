"""Tests for configuration management."""

from __future__ import annotations

from pathlib import Path

import pytest

from taskpilot.config import DEFAULT_MODEL, AgentSettings, Config, HistorySettings

ENV_VARS = [
    "ANTHROPIC_API_KEY",
    "TASKPILOT_MODEL",
    "TASKPILOT_MAX_TOKENS",
    "TASKPILOT_THINKING_BUDGET",
    "TASKPILOT_TIMEOUT",
    "TASKPILOT_BASE_URL",
    "TASKPILOT_HISTORY_HEAD",
    "TASKPILOT_HISTORY_TAIL",
    "TASKPILOT_LOG_LEVEL",
    "TASKPILOT_MOCK_MODE",
    "TASKPILOT_AUTO_APPROVE",
]


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # Prevent loading from a developer's .env file
    monkeypatch.setattr("taskpilot.config.load_dotenv", lambda: None)
    return monkeypatch


class TestConfig:
    """Tests for Config class."""

    def test_from_env_defaults(self, clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
        config = Config.from_env(tmp_path)

        assert config.anthropic_api_key is None
        assert config.program_dir == tmp_path
        assert config.agent.model == DEFAULT_MODEL
        assert config.history.head == 2
        assert config.history.tail == 10
        assert config.log_level == "INFO"
        assert config.mock_mode is False
        assert config.auto_approve is False

    def test_from_env_with_values(self, clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
        clean_env.setenv("ANTHROPIC_API_KEY", "test-anthropic-key")
        clean_env.setenv("TASKPILOT_MODEL", "claude-test")
        clean_env.setenv("TASKPILOT_THINKING_BUDGET", "0")
        clean_env.setenv("TASKPILOT_BASE_URL", "http://localhost:8080")
        clean_env.setenv("TASKPILOT_HISTORY_HEAD", "4")
        clean_env.setenv("TASKPILOT_HISTORY_TAIL", "20")
        clean_env.setenv("TASKPILOT_MOCK_MODE", "true")
        clean_env.setenv("TASKPILOT_AUTO_APPROVE", "1")

        config = Config.from_env(tmp_path)

        assert config.anthropic_api_key == "test-anthropic-key"
        assert config.agent.model == "claude-test"
        assert config.agent.thinking_budget == 0
        assert config.agent.base_url == "http://localhost:8080"
        assert config.history.head == 4
        assert config.history.tail == 20
        assert config.mock_mode is True
        assert config.auto_approve is True

    def test_env_overrides_file(self, clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
        (tmp_path / "taskpilot.yaml").write_text("agent:\n  model: from-file\nhistory:\n  tail: 6\n")
        clean_env.setenv("TASKPILOT_MODEL", "from-env")

        config = Config.from_env(tmp_path)

        assert config.agent.model == "from-env"
        assert config.history.tail == 6

    def test_load_from_file_not_exists(self, tmp_path: Path) -> None:
        config = Config.load_from_file(tmp_path)

        assert config.program_dir == tmp_path
        assert config.instructions_file == "coding.md"

    def test_load_from_file_exists(self, tmp_path: Path) -> None:
        (tmp_path / "taskpilot.yaml").write_text(
            "instructions_file: porting.md\n"
            "subtask_extension: .txt\n"
            "auto_approve: true\n"
            "agent:\n"
            "  max_tokens: 32000\n"
            "  command_timeout: 30\n"
        )

        config = Config.load_from_file(tmp_path)

        assert config.instructions_file == "porting.md"
        assert config.subtask_extension == ".txt"
        assert config.auto_approve is True
        assert config.agent.max_tokens == 32000
        assert config.agent.command_timeout == 30
        assert config.instructions_path == tmp_path / "prompts" / "system" / "porting.md"

    def test_empty_file(self, tmp_path: Path) -> None:
        (tmp_path / "taskpilot.yaml").write_text("")

        assert Config.load_from_file(tmp_path).history.head == 2

    def test_paths(self, tmp_path: Path) -> None:
        config = Config(program_dir=tmp_path)

        assert config.tasks_dir == tmp_path / "prompts" / "tasks"
        assert config.instructions_path == tmp_path / "prompts" / "system" / "coding.md"
        assert config.references_dir == tmp_path / "references"
        assert config.log_dir == tmp_path / "logs"


class TestValidate:
    """Tests for Config.validate."""

    def test_valid_mock_config(self, mock_config: Config) -> None:
        assert mock_config.validate() == []

    def test_requires_api_key(self, program_dir: Path) -> None:
        errors = Config(program_dir=program_dir).validate()

        assert any("ANTHROPIC_API_KEY" in e for e in errors)

    def test_missing_directories(self, tmp_path: Path) -> None:
        errors = Config(program_dir=tmp_path, mock_mode=True).validate()

        assert any("Tasks directory does not exist" in e for e in errors)
        assert any("Instructions file does not exist" in e for e in errors)

    def test_thinking_budget_bounds(self, mock_config: Config) -> None:
        mock_config.agent = AgentSettings(max_tokens=1000, thinking_budget=1000)

        assert mock_config.validate() == ["thinking_budget must be lower than max_tokens"]

    def test_negative_history(self, mock_config: Config) -> None:
        mock_config.history = HistorySettings(head=-1, tail=10)

        assert mock_config.validate() == ["History head and tail must be non-negative"]


class TestSettings:
    """Tests for the settings dataclasses."""

    def test_agent_settings_from_dict_defaults(self) -> None:
        assert AgentSettings.from_dict({}) == AgentSettings()

    def test_history_settings_from_dict(self) -> None:
        assert HistorySettings.from_dict({"head": "3"}) == HistorySettings(head=3, tail=10)
