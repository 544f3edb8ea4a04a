"""Tests for conversation history windowing."""

from __future__ import annotations

import pytest

from taskpilot.history import HistoryWindow, reduce_history


class TestReduceHistory:
    """Tests for reduce_history."""

    @pytest.mark.parametrize("length", [0, 1, 5, 11])
    def test_short_sequences_unchanged(self, length: int) -> None:
        """Sequences shorter than head + tail are returned as they are."""
        messages = list(range(length))
        assert reduce_history(messages, head=2, tail=10) == messages

    def test_exactly_window_size(self) -> None:
        """A sequence of exactly head + tail messages keeps all of them."""
        messages = list(range(12))
        assert reduce_history(messages, head=2, tail=10) == messages

    @pytest.mark.parametrize("length", [13, 20, 250])
    def test_long_sequences_keep_head_and_tail(self, length: int) -> None:
        """Longer sequences become input[0:head] + input[L-tail:L]."""
        messages = [f"m{i}" for i in range(length)]
        reduced = reduce_history(messages, head=2, tail=10)

        assert len(reduced) == 12
        assert reduced == messages[:2] + messages[length - 10:]

    def test_returns_copy(self) -> None:
        """The input list is never mutated or returned as is."""
        messages = [1, 2, 3]
        reduced = reduce_history(messages)
        reduced.append(4)
        assert messages == [1, 2, 3]

    def test_zero_head(self) -> None:
        """With head=0 only the tail survives."""
        assert reduce_history(list(range(6)), head=0, tail=3) == [3, 4, 5]


class TestHistoryWindow:
    """Tests for HistoryWindow."""

    def test_defaults(self) -> None:
        window = HistoryWindow()
        assert window.head == 2
        assert window.tail == 10

    def test_reduce_uses_bounds(self) -> None:
        window = HistoryWindow(head=1, tail=2)
        assert window.reduce("abcdef") == ["a", "e", "f"]

    def test_negative_bounds_rejected(self) -> None:
        with pytest.raises(ValueError):
            HistoryWindow(head=-1)
