"""Shared test fixtures."""

import io

import pytest
from rich.console import Console

from ftmi.input_source import InputEvent, InputSource


class ScriptedInputSource(InputSource):
    """Replays lines; None stands for a pause longer than any timeout."""

    def __init__(self, items: list[str | None]) -> None:
        self.items = list(items)
        self.timeouts: list[float | None] = []

    def next_line(self, timeout: float | None = None) -> str | InputEvent:
        self.timeouts.append(timeout)
        while self.items:
            item = self.items.pop(0)
            if item is not None:
                return item
            if timeout is not None:
                return InputEvent.TIMEOUT
        return InputEvent.EOF


@pytest.fixture
def scripted_input():
    """Factory for scripted input sources."""
    return ScriptedInputSource


@pytest.fixture
def console() -> Console:
    """A wide console writing to memory."""
    return Console(file=io.StringIO(), width=200)
