"""Wiring of a complete run: prompts, agent, confirmation and orchestrator."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from .agent import AgentRunner, AnthropicAgent, MockAgent
from .cancellation import RunCancelled
from .coding import CodingStep
from .config import Config
from .confirmation import ConfirmationChannel, Confirmer
from .events import EventEmitter, EventType
from .history import HistoryWindow
from .loop_logger import RunLogger
from .orchestrator import Orchestrator, RunResult
from .prompts import build_prompt_context, render_prompt
from .tools import Toolbox

logger = logging.getLogger(__name__)


class Launcher:
    """Builds the run pipeline for a project and executes it."""

    def __init__(
        self,
        config: Config,
        confirmer: Confirmer,
        agent: Optional[AgentRunner] = None,
        emitter: Optional[EventEmitter] = None,
    ):
        """Initialize the launcher.

        Args:
            config: Run configuration (program dir, agent and history settings).
            confirmer: Decision-maker for confirmation requests.
            agent: Agent to use. Defaults to a MockAgent in mock mode and an
                AnthropicAgent otherwise.
            emitter: Event emitter shared by all components.
        """
        self.config = config
        self.confirmer = confirmer
        self.agent = agent
        self.emitter = emitter or EventEmitter()
        self.run_logger: Optional[RunLogger] = None

    def build_agent(self, project_dir: Path) -> AgentRunner:
        if self.agent is not None:
            return self.agent

        if self.config.mock_mode:
            logger.info("Mock mode: the agent reports success for every subtask")
            return MockAgent()

        toolbox = Toolbox(project_dir, self.config.agent.command_timeout, self.emitter)
        return AnthropicAgent(toolbox, self.config.agent, api_key=self.config.anthropic_api_key)

    def run(
        self,
        project_dir: Path,
        start_task: int = 0,
        start_subtask: int = 0,
        cancel: Optional[threading.Event] = None,
    ) -> RunResult:
        """Run the configured work list against a project.

        Args:
            project_dir: The project the agent works on.
            start_task: Index of the first task.
            start_subtask: Index of the first subtask within the first task.
            cancel: Optional cancellation event.

        Returns:
            The orchestrator's RunResult.
        """
        config = self.config
        project_dir = Path(project_dir).resolve()
        project_name = project_dir.name

        logger.info(f"Starting work on the project: {project_name}")
        logger.info(f"Using the project path: {project_dir}")
        logger.info(f"Using the program path: {config.program_dir}")
        logger.info(f"Starting task index: {start_task}")
        logger.info(f"Starting subtask index: {start_subtask}")

        self.run_logger = RunLogger(config.log_dir, project_name)
        self.run_logger.attach(self.emitter)

        context = build_prompt_context(project_dir, config.references_dir)
        instructions = render_prompt(config.instructions_path, context)

        channel = ConfirmationChannel(self.confirmer, self.emitter)
        step = CodingStep(
            agent=self.build_agent(project_dir),
            instructions=instructions,
            confirmations=channel,
            prompt_context=context,
            history=HistoryWindow(config.history.head, config.history.tail),
            emitter=self.emitter,
        )
        orchestrator = Orchestrator(step, config.subtask_extension, self.emitter)

        self.emitter.emit(EventType.RUN_START, {
            "project": project_name,
            "project_dir": str(project_dir),
            "task_index": start_task,
            "subtask_index": start_subtask,
        })

        status = "failed"
        summary = None
        try:
            result = orchestrator.start(config.tasks_dir, start_task, start_subtask, cancel)
            status = result.status.value
            summary = result.summary
            return result
        except RunCancelled:
            status = "cancelled"
            raise
        finally:
            self.run_logger.finalize(status, summary)
