"""
bootstrap/entrypoints.py - Application entry points

Usage:

    kvshell --dir <path> [--value-dir <path>] [verb args...]

With a trailing statement the process runs it once (batch mode) and exits
with the statement's exit code. Without one it starts a shell: statements
are read from --script, from standard input when it is not a terminal, or
from an interactive prompt.
"""

from __future__ import annotations
from typing import List, Optional, TextIO
import argparse
import json
import logging
import sys

from pydantic import ValidationError

from kvshell.cli.core import CLIContext
from kvshell.cli.dispatch import StatementDispatcher
from kvshell.cli.repl import REPL, LineSource, PromptLineSource, ScriptLineSource
from kvshell.errors import ConfigurationError, ErrorCode, KVShellError
from kvshell.store import StoreOptions, open_store

from .config import KVShellConfig, load_config

logger = logging.getLogger("bootstrap.entrypoints")

_HANDLER_MARK = "_kvshell_handler"


class JSONFormatter(logging.Formatter):
    def format(self, record):
        return json.dumps({
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        })


DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
    level: str = "WARNING",
    log_file: Optional[str] = None,
    json_format: bool = False,
    log_format: str = DEFAULT_LOG_FORMAT,
) -> None:
    """
    Configure application logging.

    Log records go to stderr; stdout is reserved for statement output.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file path
        json_format: Use JSON format for logs
        log_format: Format string for plain-text logs
    """
    log_level = getattr(logging, level.upper(), logging.WARNING)

    if json_format:
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(log_format)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Replace handlers from an earlier call
    for handler in list(root_logger.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            root_logger.removeHandler(handler)
            handler.close()

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(log_level)
        setattr(handler, _HANDLER_MARK, True)
        root_logger.addHandler(handler)


class _ArgumentParser(argparse.ArgumentParser):
    """Flag errors are startup failures: exit 1, not argparse's 2."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"error: {message}\n")


def build_parser(dispatcher: Optional[StatementDispatcher] = None) -> argparse.ArgumentParser:
    dispatcher = dispatcher or StatementDispatcher()
    parser = _ArgumentParser(
        prog="kvshell",
        usage="%(prog)s [OPTIONS] [SYNTAX]",
        description="Inspect and modify a key-value store.",
        epilog=dispatcher.help_text() + "  (nil)                     no syntax starts interactive shell\n",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--dir",
        help="The store's index directory",
        default=None,
    )
    parser.add_argument(
        "--value-dir",
        help="The store's value log directory, if different from the index directory",
        default=None,
    )
    parser.add_argument(
        "-c", "--config",
        help="Path to configuration file",
        default=None,
    )
    parser.add_argument(
        "-s", "--script",
        help="Run statements from a file instead of the terminal",
        default=None,
    )
    parser.add_argument(
        "--history-file",
        help="Interactive history file",
        default=None,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Log level",
    )
    parser.add_argument(
        "--log-file",
        help="Log file path",
        default=None,
    )
    parser.add_argument(
        "statement",
        nargs=argparse.REMAINDER,
        help="Statement to run once instead of starting a shell",
    )
    return parser


def _apply_flags(config: KVShellConfig, parsed: argparse.Namespace) -> None:
    """Command-line flags take precedence over file and environment."""
    if parsed.dir:
        config.store.dir = parsed.dir
    if parsed.value_dir:
        config.store.value_dir = parsed.value_dir
    if parsed.history_file:
        config.shell.history_file = parsed.history_file
    if parsed.verbose:
        config.logging.level = "DEBUG"
    elif parsed.log_level:
        config.logging.level = parsed.log_level
    if parsed.log_file:
        config.logging.log_file = parsed.log_file


def _statement_tokens(parsed: argparse.Namespace) -> List[str]:
    """Trailing statement tokens, without a leading "--" flag terminator."""
    statement = list(parsed.statement)
    if statement[:1] == ["--"]:
        statement = statement[1:]
    return statement


def _line_source(config: KVShellConfig, script: Optional[str]) -> LineSource:
    if script:
        try:
            return ScriptLineSource.from_file(script)
        except OSError as e:
            raise ConfigurationError(f"cannot read script {script}: {e}") from e
    if not sys.stdin.isatty():
        return ScriptLineSource(line for line in sys.stdin)
    return PromptLineSource(
        prompt=config.shell.render_prompt(config.store.dir),
        history_file=config.shell.history_file,
        history_search=config.shell.history_search,
    )


def run_cli(
    config: KVShellConfig,
    statement: Optional[List[str]] = None,
    script: Optional[str] = None,
    line_source: Optional[LineSource] = None,
    stdout: Optional[TextIO] = None,
    stderr: Optional[TextIO] = None,
) -> int:
    """
    Open the store, run batch or shell mode, and close the store.

    Returns:
        Exit code

    Raises:
        ConfigurationError: if no store directory is configured
        StoreOpenError: if the store cannot be opened
    """
    if not config.store.dir:
        raise ConfigurationError("--dir not supplied", code=ErrorCode.CFG_MISSING_DIR)

    options = StoreOptions(
        dir=config.store.dir,
        value_dir=config.store.value_dir or None,
        sync_writes=config.store.sync_writes,
    )

    with open_store(options) as store:
        ctx = CLIContext(
            store=store,
            stdout=stdout or sys.stdout,
            stderr=stderr or sys.stderr,
        )

        if statement:
            result = StatementDispatcher().dispatch(ctx, statement)
            logger.debug(f"Batch statement finished: {result.status.value}")
            return result.exit_code

        REPL(ctx).run(line_source or _line_source(config, script))
        return 0


def cli_main(args: Optional[List[str]] = None) -> int:
    """
    CLI entry point.

    Args:
        args: Command line arguments (defaults to sys.argv)

    Returns:
        Exit code
    """
    parser = build_parser()
    parsed = parser.parse_args(args)

    try:
        config = load_config(parsed.config)
        _apply_flags(config, parsed)
        setup_logging(
            level=config.logging.level,
            log_file=config.logging.log_file,
            json_format=config.logging.json_logs,
            log_format=config.logging.format,
        )
        return run_cli(config, statement=_statement_tokens(parsed), script=parsed.script)

    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130
    except ValidationError as e:
        logger.debug("Invalid store options", exc_info=True)
        print(f"error: invalid store options: {e.error_count()} error(s)", file=sys.stderr)
        return 1
    except KVShellError as e:
        logger.debug(f"Startup failed: {e.to_dict()}", exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(cli_main())
