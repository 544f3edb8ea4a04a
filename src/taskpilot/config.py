"""Configuration management for taskpilot."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv

from .history import DEFAULT_HEAD, DEFAULT_TAIL
from .task_manager import DEFAULT_SUBTASK_EXTENSION

CONFIG_FILE_NAME = "taskpilot.yaml"

DEFAULT_MODEL = "claude-sonnet-4-20250514"


def _env_flag(name: str, default: str = "") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class AgentSettings:
    """Settings for the coding agent."""

    model: str = DEFAULT_MODEL
    max_tokens: int = 16000
    thinking_budget: int = 4096  # 0 disables extended thinking
    timeout: int = 600
    base_url: Optional[str] = None
    command_timeout: int = 120

    @classmethod
    def from_dict(cls, data: dict) -> AgentSettings:
        """Create AgentSettings from dictionary."""
        return cls(
            model=data.get("model", DEFAULT_MODEL),
            max_tokens=int(data.get("max_tokens", 16000)),
            thinking_budget=int(data.get("thinking_budget", 4096)),
            timeout=int(data.get("timeout", 600)),
            base_url=data.get("base_url"),
            command_timeout=int(data.get("command_timeout", 120)),
        )


@dataclass
class HistorySettings:
    """Head/tail sizes of the conversation window."""

    head: int = DEFAULT_HEAD
    tail: int = DEFAULT_TAIL

    @classmethod
    def from_dict(cls, data: dict) -> HistorySettings:
        """Create HistorySettings from dictionary."""
        return cls(
            head=int(data.get("head", DEFAULT_HEAD)),
            tail=int(data.get("tail", DEFAULT_TAIL)),
        )


@dataclass
class Config:
    """Configuration settings for a taskpilot run.

    ``program_dir`` holds the prompts (``prompts/system`` and ``prompts/tasks``),
    the reference material and the run logs. The project being worked on is
    passed separately on the command line.
    """

    # API Keys
    anthropic_api_key: Optional[str] = None

    # Paths
    program_dir: Path = field(default_factory=Path.cwd)

    # Agent Settings
    agent: AgentSettings = field(default_factory=AgentSettings)
    history: HistorySettings = field(default_factory=HistorySettings)

    # Work list
    instructions_file: str = "coding.md"
    subtask_extension: str = DEFAULT_SUBTASK_EXTENSION

    # Runtime Settings
    log_level: str = "INFO"
    mock_mode: bool = False
    auto_approve: bool = False

    @classmethod
    def from_dict(cls, data: dict, program_dir: Optional[Path] = None) -> Config:
        """Create Config from a parsed taskpilot.yaml."""
        return cls(
            program_dir=Path(program_dir) if program_dir else Path.cwd(),
            agent=AgentSettings.from_dict(data.get("agent") or {}),
            history=HistorySettings.from_dict(data.get("history") or {}),
            instructions_file=data.get("instructions_file", "coding.md"),
            subtask_extension=data.get("subtask_extension", DEFAULT_SUBTASK_EXTENSION),
            log_level=data.get("log_level", "INFO"),
            mock_mode=bool(data.get("mock_mode", False)),
            auto_approve=bool(data.get("auto_approve", False)),
        )

    @classmethod
    def load_from_file(cls, program_dir: Path) -> Config:
        """Load config from taskpilot.yaml, or defaults if the file is missing."""
        config_path = program_dir / CONFIG_FILE_NAME
        if config_path.exists():
            with open(config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            return cls.from_dict(data, program_dir)
        return cls(program_dir=program_dir)

    @classmethod
    def from_env(cls, program_dir: Optional[Path] = None) -> Config:
        """Load configuration from taskpilot.yaml and environment variables.

        Environment variables take precedence over the file.

        Args:
            program_dir: Directory holding prompts and taskpilot.yaml. Defaults to CWD.

        Returns:
            Config instance.
        """
        load_dotenv()

        config = cls.load_from_file(Path(program_dir) if program_dir else Path.cwd())
        agent = config.agent
        history = config.history

        config.anthropic_api_key = os.getenv("ANTHROPIC_API_KEY")
        agent.model = os.getenv("TASKPILOT_MODEL", agent.model)
        agent.max_tokens = int(os.getenv("TASKPILOT_MAX_TOKENS", str(agent.max_tokens)))
        agent.thinking_budget = int(os.getenv("TASKPILOT_THINKING_BUDGET", str(agent.thinking_budget)))
        agent.timeout = int(os.getenv("TASKPILOT_TIMEOUT", str(agent.timeout)))
        agent.base_url = os.getenv("TASKPILOT_BASE_URL", agent.base_url or "") or None
        history.head = int(os.getenv("TASKPILOT_HISTORY_HEAD", str(history.head)))
        history.tail = int(os.getenv("TASKPILOT_HISTORY_TAIL", str(history.tail)))
        config.log_level = os.getenv("TASKPILOT_LOG_LEVEL", config.log_level)
        config.mock_mode = config.mock_mode or _env_flag("TASKPILOT_MOCK_MODE")
        config.auto_approve = config.auto_approve or _env_flag("TASKPILOT_AUTO_APPROVE")

        return config

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors.

        Returns:
            List of validation error messages. Empty if valid.
        """
        errors = []

        if not self.mock_mode and not self.anthropic_api_key:
            errors.append("ANTHROPIC_API_KEY is required when not in mock mode")

        if not self.tasks_dir.exists():
            errors.append(f"Tasks directory does not exist: {self.tasks_dir}")

        if not self.instructions_path.exists():
            errors.append(f"Instructions file does not exist: {self.instructions_path}")

        if self.agent.thinking_budget and self.agent.thinking_budget >= self.agent.max_tokens:
            errors.append("thinking_budget must be lower than max_tokens")

        if self.history.head < 0 or self.history.tail < 0:
            errors.append("History head and tail must be non-negative")

        return errors

    @property
    def prompts_dir(self) -> Path:
        """Path to the prompts directory."""
        return self.program_dir / "prompts"

    @property
    def tasks_dir(self) -> Path:
        """Path to the task tree (one subdirectory per task)."""
        return self.prompts_dir / "tasks"

    @property
    def system_dir(self) -> Path:
        """Path to the system prompts directory."""
        return self.prompts_dir / "system"

    @property
    def instructions_path(self) -> Path:
        """Path to the coding agent instructions."""
        return self.system_dir / self.instructions_file

    @property
    def references_dir(self) -> Path:
        """Path to reference material exposed to prompts."""
        return self.program_dir / "references"

    @property
    def log_dir(self) -> Path:
        """Path to JSON run logs."""
        return self.program_dir / "logs"
