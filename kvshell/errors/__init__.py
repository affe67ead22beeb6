"""
errors/ - Error Taxonomy

Structured error classification shared by the store and the CLI.
"""

from .taxonomy import (
    ErrorCategory,
    ErrorCode,
    KVShellError,
    ConfigurationError,
    StoreError,
    StoreOpenError,
    StoreClosedError,
    IterationError,
    ValueFetchError,
)

__all__ = [
    "ErrorCategory",
    "ErrorCode",
    "KVShellError",
    "ConfigurationError",
    "StoreError",
    "StoreOpenError",
    "StoreClosedError",
    "IterationError",
    "ValueFetchError",
]
