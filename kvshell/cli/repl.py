"""
cli/repl.py - Interactive session driver

Reads one line at a time from a LineSource and turns it into a state
transition. The session has two states, RUNNING and STOPPED; STOPPED is
terminal. It stops on end-of-input, on an interrupt with an empty line
buffer, or on a termination token. Every other input, whether the
statement succeeded or not, keeps it RUNNING.
"""

from __future__ import annotations
from typing import Iterable, Iterator, Optional
from dataclasses import dataclass
from enum import Enum
from abc import ABC, abstractmethod
from pathlib import Path
import logging
import os

from prompt_toolkit import PromptSession
from prompt_toolkit.history import FileHistory, History, InMemoryHistory
from prompt_toolkit.key_binding import KeyBindings

from .core import (
    CLIContext,
    CommandResult,
    HELP_TOKENS,
    TERMINATION_TOKENS,
    interactive_help,
    tokenize,
)
from .dispatch import StatementDispatcher

logger = logging.getLogger("cli.repl")


class SessionState(Enum):
    """Session lifecycle state."""
    RUNNING = "running"
    STOPPED = "stopped"


class LineEventKind(Enum):
    """What a line source produced."""
    LINE = "line"
    INTERRUPT = "interrupt"
    EOF = "eof"


@dataclass(frozen=True)
class LineEvent:
    """One read from a line source. For INTERRUPT, text is the discarded buffer."""

    kind: LineEventKind
    text: str = ""

    @classmethod
    def line(cls, text: str) -> "LineEvent":
        return cls(LineEventKind.LINE, text)

    @classmethod
    def interrupt(cls, pending: str = "") -> "LineEvent":
        return cls(LineEventKind.INTERRUPT, pending)

    @classmethod
    def eof(cls) -> "LineEvent":
        return cls(LineEventKind.EOF)


class LineSource(ABC):
    """Source of input lines. Acquired with ``with`` for the session's lifetime."""

    @abstractmethod
    def read(self) -> LineEvent:
        """Block until the next line, interrupt or end of input."""

    def close(self) -> None:
        pass

    def __enter__(self) -> "LineSource":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class LineInterrupted(Exception):
    """Raised out of the prompt on Ctrl+C, carrying the buffer being discarded."""

    def __init__(self, pending: str):
        super().__init__(pending)
        self.pending = pending


class PromptLineSource(LineSource):
    """Terminal line editing with persistent history, backed by prompt_toolkit."""

    def __init__(
        self,
        prompt: str = "> ",
        history_file: Optional[str] = None,
        history_search: bool = True,
        input=None,
        output=None,
    ):
        """
        Args:
            prompt: Prompt text
            history_file: History file path; in-memory history if omitted
            history_search: Prefix search through history with the arrow keys
            input: prompt_toolkit Input (defaults to the terminal)
            output: prompt_toolkit Output (defaults to the terminal)
        """
        self.prompt = prompt
        self._session: PromptSession = PromptSession(
            history=self._make_history(history_file),
            key_bindings=self._make_key_bindings(),
            enable_history_search=history_search,
            input=input,
            output=output,
        )

    @staticmethod
    def _make_history(history_file: Optional[str]) -> History:
        if not history_file:
            return InMemoryHistory()
        path = Path(os.path.expanduser(history_file))
        path.parent.mkdir(parents=True, exist_ok=True)
        return FileHistory(str(path))

    @staticmethod
    def _make_key_bindings() -> KeyBindings:
        kb = KeyBindings()

        @kb.add("c-c")
        def _interrupt(event):
            event.app.exit(exception=LineInterrupted(event.current_buffer.text))

        return kb

    def read(self) -> LineEvent:
        try:
            return LineEvent.line(self._session.prompt(self.prompt))
        except LineInterrupted as e:
            return LineEvent.interrupt(e.pending)
        except KeyboardInterrupt:
            return LineEvent.interrupt()
        except EOFError:
            return LineEvent.eof()


class ScriptLineSource(LineSource):
    """Lines from a file or any iterable; running out is end of input."""

    def __init__(self, lines: Iterable[str], comment_prefix: str = "#"):
        self._lines: Iterator[str] = iter(lines)
        self._comment_prefix = comment_prefix
        self._closer = getattr(lines, "close", None)

    @classmethod
    def from_file(cls, path: str) -> "ScriptLineSource":
        return cls(open(path, "r", encoding="utf-8"))

    def read(self) -> LineEvent:
        for raw in self._lines:
            line = raw.rstrip("\r\n")
            if self._comment_prefix and line.lstrip().startswith(self._comment_prefix):
                continue
            return LineEvent.line(line)
        return LineEvent.eof()

    def close(self) -> None:
        if self._closer is not None:
            self._closer()
            self._closer = None


class REPL:
    """
    Interactive Read-Eval-Print Loop over a store handle.
    """

    def __init__(
        self,
        ctx: Optional[CLIContext] = None,
        dispatcher: Optional[StatementDispatcher] = None,
    ):
        """
        Args:
            ctx: CLI context (created if not provided)
            dispatcher: Statement dispatcher (default vocabulary if not provided)
        """
        self.ctx = ctx or CLIContext()
        self.dispatcher = dispatcher or StatementDispatcher()
        self.last_result: Optional[CommandResult] = None
        self.statements_run = 0

    def step(self, state: SessionState, event: LineEvent) -> SessionState:
        """Apply one line event to the session state and return the new state."""
        if state is SessionState.STOPPED:
            return state

        if event.kind is LineEventKind.EOF:
            logger.debug("End of input")
            return SessionState.STOPPED

        if event.kind is LineEventKind.INTERRUPT:
            if not event.text:
                logger.debug("Interrupt on empty line")
                return SessionState.STOPPED
            logger.debug("Interrupt discarded pending line")
            return SessionState.RUNNING

        tokens = tokenize(event.text)
        if not tokens:
            return SessionState.RUNNING

        verb = tokens[0]
        if verb in TERMINATION_TOKENS:
            return SessionState.STOPPED
        if verb in HELP_TOKENS:
            self.ctx.write(interactive_help(self.dispatcher.registry))
            return SessionState.RUNNING

        self.ctx.history.append(" ".join(tokens))
        self.statements_run += 1
        self.last_result = self.dispatcher.dispatch(self.ctx, tokens)
        return SessionState.RUNNING

    def run(self, line_source: LineSource) -> SessionState:
        """
        Read and apply lines until the session stops.

        Args:
            line_source: Where lines come from; closed when the loop ends

        Returns:
            The final state, always STOPPED
        """
        state = SessionState.RUNNING
        with line_source:
            while state is SessionState.RUNNING:
                state = self.step(state, line_source.read())
        logger.debug(f"Session stopped after {self.statements_run} statement(s)")
        return state


def run_interactive(ctx: CLIContext, line_source: LineSource) -> SessionState:
    """Run a session with the default statement vocabulary."""
    return REPL(ctx).run(line_source)
