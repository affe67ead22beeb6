"""
cli/ - Command Line Interface

Provides the statement dispatcher and the interactive session driver:
- Batch mode (one statement from the process arguments)
- Interactive REPL and script mode
- Statements: get, set, delete, dump
"""

from .core import (
    CLIContext,
    ResultStatus,
    CommandResult,
    CommandRegistry,
    CLICommand,
    tokenize,
)

from .commands import (
    GetCommand,
    SetCommand,
    DeleteCommand,
    DumpCommand,
)

from .dispatch import StatementDispatcher

from .repl import (
    REPL,
    SessionState,
    LineEvent,
    LineEventKind,
    LineSource,
    PromptLineSource,
    ScriptLineSource,
    run_interactive,
)


__all__ = [
    # Core
    "CLIContext",
    "ResultStatus",
    "CommandResult",
    "CommandRegistry",
    "CLICommand",
    "tokenize",
    # Commands
    "GetCommand",
    "SetCommand",
    "DeleteCommand",
    "DumpCommand",
    # Dispatch
    "StatementDispatcher",
    # REPL
    "REPL",
    "SessionState",
    "LineEvent",
    "LineEventKind",
    "LineSource",
    "PromptLineSource",
    "ScriptLineSource",
    "run_interactive",
]
