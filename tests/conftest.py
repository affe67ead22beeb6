"""
kvshell Test Configuration and Fixtures

Provides a temporary store, a context writing to in-memory streams, and
scripted line sources for driving sessions.
"""

import io
import logging
from typing import List, Union

import pytest

from kvshell.cli.core import CLIContext
from kvshell.cli.repl import LineEvent, LineSource
from kvshell.store import StoreOptions, open_store


class ScriptedLineSource(LineSource):
    """Replays a fixed sequence of events, then reports end of input."""

    def __init__(self, events: List[Union[str, LineEvent]]):
        self._events = list(events)
        self.reads = 0
        self.closed = False

    def read(self) -> LineEvent:
        self.reads += 1
        if not self._events:
            return LineEvent.eof()
        event = self._events.pop(0)
        if isinstance(event, str):
            return LineEvent.line(event)
        return event

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def store(tmp_path):
    """Open store under tmp_path, closed after the test."""
    s = open_store(StoreOptions(dir=str(tmp_path / "db")))
    yield s
    s.close()


@pytest.fixture
def ctx(store):
    """CLIContext bound to the store, writing to StringIO streams."""
    return CLIContext(store=store, stdout=io.StringIO(), stderr=io.StringIO())


@pytest.fixture
def scripted():
    """Factory for ScriptedLineSource."""
    return ScriptedLineSource


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """Undo handler changes made by setup_logging()."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
