"""taskpilot - drives a coding agent through a task/subtask work list."""

__version__ = "0.1.0"
