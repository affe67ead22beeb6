"""
cli/core.py - Core CLI infrastructure

Statement context, structured results, the command base class and the
registry that maps verbs to commands.
"""

from __future__ import annotations
from typing import Any, Deque, Dict, List, Optional, TextIO, TYPE_CHECKING
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from abc import ABC, abstractmethod
import sys

from kvshell.errors import ErrorCode

if TYPE_CHECKING:
    from kvshell.store import KVStore

TERMINATION_TOKENS = ("\\q", "exit")
HELP_TOKENS = ("\\?", "\\help")

# Statements kept in a session's history
HISTORY_LIMIT = 1000


class ResultStatus(Enum):
    """Outcome of one dispatched statement."""
    OK = "ok"
    USAGE_ERROR = "usage_error"
    OPERATIONAL_ERROR = "operational_error"


@dataclass
class CLIContext:
    """Context for statement execution."""

    store: Optional["KVStore"] = None

    # Output streams, resolved at construction so test capture works
    stdout: TextIO = field(default_factory=lambda: sys.stdout)
    stderr: TextIO = field(default_factory=lambda: sys.stderr)

    # Most recent statements of the session
    history: Deque[str] = field(default_factory=lambda: deque(maxlen=HISTORY_LIMIT))

    def write(self, text: str) -> None:
        self.stdout.write(text)

    def error(self, message: str) -> None:
        """Write an operational error line to the error stream."""
        self.stderr.write(f"error: {message}\n")


@dataclass
class CommandResult:
    """Result of one statement."""

    status: ResultStatus = ResultStatus.OK
    message: str = ""
    error: Optional[str] = None
    code: Optional[ErrorCode] = None

    # Entries written (dump) and entries skipped on value fetch errors
    entries: int = 0
    skipped: int = 0

    @property
    def success(self) -> bool:
        return self.status is ResultStatus.OK

    @property
    def exit_code(self) -> int:
        if self.status is ResultStatus.OPERATIONAL_ERROR:
            return 1
        if self.status is ResultStatus.USAGE_ERROR:
            return 2
        return 0

    @classmethod
    def usage(cls, message: str, code: ErrorCode = ErrorCode.USG_ARITY) -> "CommandResult":
        return cls(status=ResultStatus.USAGE_ERROR, error=message, code=code)

    @classmethod
    def failure(cls, error: str, **kwargs: Any) -> "CommandResult":
        return cls(status=ResultStatus.OPERATIONAL_ERROR, error=error, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "message": self.message,
            "error": self.error,
            "code": self.code.value if self.code else None,
            "entries": self.entries,
            "skipped": self.skipped,
        }


class CLICommand(ABC):
    """Base class for statements."""

    name: str = "command"
    description: str = "Base command"
    # Positional argument names, excluding the verb
    params: List[str] = []

    @property
    def arity(self) -> int:
        """Required token count, verb included."""
        return len(self.params) + 1

    @property
    def usage(self) -> str:
        return " ".join([self.name] + [f"<{p}>" for p in self.params])

    @abstractmethod
    def execute(self, ctx: CLIContext, args: List[str]) -> CommandResult:
        """
        Execute the statement with already arity-checked arguments.

        Store failures propagate as StoreError; the dispatcher reports them.
        """


class CommandRegistry:
    """Registry for statements, in registration order."""

    def __init__(self):
        self._commands: Dict[str, CLICommand] = {}

    def register(self, command: CLICommand) -> None:
        """Register a command."""
        self._commands[command.name] = command

    def get(self, name: str) -> Optional[CLICommand]:
        """Get command by verb. Verbs are case-sensitive."""
        return self._commands.get(name)

    def list_commands(self) -> List[str]:
        """List all verbs."""
        return list(self._commands.keys())

    def get_all(self) -> Dict[str, CLICommand]:
        """Get all commands."""
        return dict(self._commands)


def tokenize(line: str) -> List[str]:
    """Split a line into whitespace-separated tokens."""
    return line.strip().split()


def render_bytes(data: bytes) -> str:
    return data.decode("utf-8", errors="backslashreplace")


def cli_help(registry: CommandRegistry) -> str:
    """Statement syntax help."""
    lines = ["Syntax:"]
    for cmd in registry.get_all().values():
        lines.append(f"  {cmd.usage:<26}{cmd.description}")
    return "\n".join(lines) + "\n"


def interactive_help(registry: CommandRegistry) -> str:
    """Statement syntax help plus the shell-only tokens."""
    return cli_help(registry) + (
        "Type:\n"
        "  \\q or exit                to exit (Ctrl+C/Ctrl+D also supported)\n"
        "  \\? or \\help               print this help.\n"
    )
