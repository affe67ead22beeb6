"""
bootstrap/ - Bootstrap Layer

Configuration loading, logging setup and the process entry point.
"""

from .config import (
    KVShellConfig,
    StoreConfig,
    ShellConfig,
    LoggingConfig,
    load_config,
)

from .entrypoints import (
    setup_logging,
    build_parser,
    run_cli,
    cli_main,
)

__all__ = [
    # Config
    "KVShellConfig",
    "StoreConfig",
    "ShellConfig",
    "LoggingConfig",
    "load_config",
    # Entry points
    "setup_logging",
    "build_parser",
    "run_cli",
    "cli_main",
]
