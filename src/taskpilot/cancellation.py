"""Cooperative cancellation for a run."""

from __future__ import annotations

import threading
from typing import Optional


class RunCancelled(Exception):
    """Raised when a cancellation signal is observed during a run."""

    pass


def check_cancelled(cancel: Optional[threading.Event], where: str = "") -> None:
    """Raise RunCancelled if the cancellation event has been set.

    Args:
        cancel: Event shared with the caller, or None when the run cannot be cancelled.
        where: Short description of the suspension point, used in the error message.
    """
    if cancel is not None and cancel.is_set():
        suffix = f" while {where}" if where else ""
        raise RunCancelled(f"Run cancelled{suffix}")
