"""
cli/commands.py - Statement implementations

get, set, delete and dump. Arity has already been checked by the
dispatcher when execute() runs.
"""

from __future__ import annotations
from typing import List
import logging

from kvshell.errors import ErrorCode, ValueFetchError
from kvshell.store import IteratorOptions

from .core import CLICommand, CLIContext, CommandResult, render_bytes

logger = logging.getLogger("cli.commands")

# No statement syntax sets the meta byte
DEFAULT_USER_META = 0x00


def _to_bytes(token: str) -> bytes:
    return token.encode("utf-8")


class GetCommand(CLICommand):
    """Print the value stored under a key."""

    name = "get"
    description = "get value by key"
    params = ["KEY"]

    def execute(self, ctx: CLIContext, args: List[str]) -> CommandResult:
        item = ctx.store.get(_to_bytes(args[0]))
        value = item.value()
        # Absent keys and empty values both print nothing
        if value:
            ctx.write(render_bytes(value) + "\n")
        return CommandResult(message=f"{len(value)} bytes")


class SetCommand(CLICommand):
    """Store a value under a key."""

    name = "set"
    description = "set item by key and value"
    params = ["KEY", "VALUE"]

    def execute(self, ctx: CLIContext, args: List[str]) -> CommandResult:
        ctx.store.set(_to_bytes(args[0]), _to_bytes(args[1]), DEFAULT_USER_META)
        return CommandResult(message=f"set {args[0]}")


class DeleteCommand(CLICommand):
    """Remove a key."""

    name = "delete"
    description = "delete item by key"
    params = ["KEY"]

    def execute(self, ctx: CLIContext, args: List[str]) -> CommandResult:
        ctx.store.delete(_to_bytes(args[0]))
        return CommandResult(message=f"deleted {args[0]}")


class DumpCommand(CLICommand):
    """
    Print every entry as ``<key> <value>`` in the store's key order.

    The scan is lazy. An entry whose value cannot be fetched is reported on
    the error stream and skipped; the scan goes on and the result is an
    operational error. A failure of the iteration itself ends the scan.
    """

    name = "dump"
    description = "dump item list"
    params: List[str] = []

    def execute(self, ctx: CLIContext, args: List[str]) -> CommandResult:
        entries = 0
        skipped = 0
        with ctx.store.new_iterator(IteratorOptions()) as it:
            for item in it:
                key = render_bytes(item.key)
                try:
                    value = item.value()
                except ValueFetchError as e:
                    logger.warning(f"Skipping {key!r} in dump: {e}")
                    ctx.error(f"{key}: {e}")
                    skipped += 1
                    continue
                ctx.write(f"{key} {render_bytes(value)}\n")
                entries += 1

        if skipped:
            return CommandResult.failure(
                f"{skipped} value(s) could not be read",
                code=ErrorCode.STO_VALUE_FETCH,
                entries=entries,
                skipped=skipped,
            )
        return CommandResult(message=f"{entries} entries", entries=entries)


def default_commands() -> List[CLICommand]:
    """The statement vocabulary, in help order."""
    return [GetCommand(), SetCommand(), DeleteCommand(), DumpCommand()]
