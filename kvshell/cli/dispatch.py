"""
cli/dispatch.py - Statement dispatcher

Validates and executes exactly one statement. Usage problems print the
syntax help and never touch the store; store failures are written to the
error stream as ``error: <cause>``. Nothing escapes dispatch() and it has
no say over whether the session continues.
"""

from __future__ import annotations
from typing import List, Optional
import logging

from kvshell.errors import ErrorCode, KVShellError

from .core import CLIContext, CommandRegistry, CommandResult, cli_help
from .commands import default_commands

logger = logging.getLogger("cli.dispatch")


class StatementDispatcher:
    """Maps a token list onto a registered statement and runs it."""

    def __init__(self, registry: Optional[CommandRegistry] = None):
        if registry is None:
            registry = CommandRegistry()
            for cmd in default_commands():
                registry.register(cmd)
        self.registry = registry

    def help_text(self) -> str:
        return cli_help(self.registry)

    def dispatch(self, ctx: CLIContext, tokens: List[str]) -> CommandResult:
        """
        Run one statement against ``ctx.store``.

        Args:
            ctx: Context holding the store handle and output streams
            tokens: Non-empty token list; tokens[0] is the verb

        Returns:
            CommandResult describing the outcome
        """
        verb, args = tokens[0], tokens[1:]

        cmd = self.registry.get(verb)
        if cmd is None:
            ctx.write(self.help_text())
            return CommandResult.usage(f"unknown statement: {verb}", code=ErrorCode.USG_UNKNOWN_VERB)

        if len(tokens) != cmd.arity:
            ctx.write(self.help_text())
            return CommandResult.usage(f"{verb} takes {cmd.arity - 1} argument(s), got {len(args)}")

        logger.debug(f"Dispatching {verb} with {len(args)} argument(s)")
        try:
            return cmd.execute(ctx, args)
        except KVShellError as e:
            ctx.error(str(e))
            return CommandResult.failure(str(e), code=e.code)
        except Exception as e:
            logger.debug(f"Unexpected failure in {verb}", exc_info=True)
            ctx.error(str(e))
            return CommandResult.failure(str(e))


_default_dispatcher: Optional[StatementDispatcher] = None


def dispatch(ctx: CLIContext, tokens: List[str]) -> CommandResult:
    """Dispatch with the default statement vocabulary."""
    global _default_dispatcher
    if _default_dispatcher is None:
        _default_dispatcher = StatementDispatcher()
    return _default_dispatcher.dispatch(ctx, tokens)
