"""kvshell - command-line shell for an embedded key-value store."""

__version__ = "1.0.0"
