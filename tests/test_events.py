"""Tests for the event system and the run logger."""

from __future__ import annotations

import io
import json
import logging
from pathlib import Path

import pytest
from rich.console import Console

from taskpilot.events import Event, EventEmitter, EventType
from taskpilot.loop_logger import RunLogger


class TestEventEmitter:
    """Tests for EventEmitter."""

    def test_subscribers_receive_events(self) -> None:
        emitter = EventEmitter()
        received = []
        emitter.subscribe(received.append)

        event = emitter.emit(EventType.TASK_START, {"title": "A", "index": 0})

        assert received == [event]

    def test_failing_subscriber_is_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        emitter = EventEmitter()
        received = []

        def broken(event: Event) -> None:
            raise RuntimeError("boom")

        emitter.subscribe(broken)
        emitter.subscribe(received.append)

        emitter.emit(EventType.TASK_START)

        assert len(received) == 1
        assert "boom" in caplog.text

    def test_event_to_dict(self) -> None:
        event = Event(EventType.ERROR, {"message": "bad"}, timestamp="2024-01-01T00:00:00")

        assert event.to_dict() == {
            "type": "error",
            "data": {"message": "bad"},
            "timestamp": "2024-01-01T00:00:00",
        }


class TestRunLogger:
    """Tests for RunLogger."""

    def test_collects_stats_and_writes_file(self, tmp_path: Path) -> None:
        emitter = EventEmitter()
        run_logger = RunLogger(tmp_path / "logs", "legacy-app")
        run_logger.attach(emitter)

        emitter.emit(EventType.SUBTASK_START, {"title": "1"})
        emitter.emit(EventType.TOOL_CALL, {"name": "read_file"})
        emitter.emit(EventType.TOOL_WARNING, {"name": "read_file", "error": "missing"})
        emitter.emit(EventType.CONFIRMATION_REQUESTED, {"text": "ok?"})
        emitter.emit(EventType.CONFIRMATION_ANSWERED, {"approved": False})
        emitter.emit(EventType.ERROR, {"message": "bad"})

        run_logger.finalize("parked", None)

        stats = run_logger.stats
        assert stats.subtasks_started == 1
        assert stats.tool_calls == 1
        assert stats.tool_failures == 1
        assert stats.confirmations_denied == 1

        data = json.loads(run_logger.log_file.read_text())
        assert data["session"]["project"] == "legacy-app"
        assert data["session"]["status"] == "parked"
        assert data["errors"][0]["error"] == "bad"
        assert "tool_call" not in [e["type"] for e in data["events"]]
        assert data["stats"]["tools"] == {"calls": 1, "failures": 1}

    def test_write_failure_is_logged(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        blocker = tmp_path / "logs"
        blocker.write_text("not a directory")
        run_logger = RunLogger(blocker, "legacy-app")

        with caplog.at_level(logging.ERROR):
            run_logger.finalize("completed", "done")

        assert "Failed to write run log" in caplog.text

    def test_print_summary(self, tmp_path: Path) -> None:
        output = io.StringIO()
        run_logger = RunLogger(tmp_path, "legacy-app")

        run_logger.print_summary(Console(file=output, width=200))

        assert "Project: legacy-app" in output.getvalue()
        assert "Subtasks: 0/0 completed" in output.getvalue()
