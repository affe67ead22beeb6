"""
errors/taxonomy.py - Error classification system

Every failure kvshell can report is a KVShellError carrying a category and
a numeric code. Usage problems never become exceptions; their USG_ codes
are carried on the dispatch result instead, so there is no UsageError class.
"""

from __future__ import annotations
from typing import Any, Dict, Optional
from enum import Enum


class ErrorCategory(Enum):
    """Error categories."""
    # Store errors (2xxx)
    STORE = "store"

    # Configuration errors (3xxx)
    CONFIGURATION = "configuration"


class ErrorCode(Enum):
    """Specific error codes."""

    # Usage (1xxx)
    USG_ARITY = 1001
    USG_UNKNOWN_VERB = 1002

    # Store (2xxx)
    STO_FAILED = 2000
    STO_OPEN = 2001
    STO_CLOSED = 2002
    STO_READ = 2003
    STO_WRITE = 2004
    STO_ITERATE = 2005
    STO_VALUE_FETCH = 2006

    # Configuration (3xxx)
    CFG_INVALID = 3001
    CFG_MISSING_DIR = 3002
    CFG_UNREADABLE = 3003


class KVShellError(Exception):
    """Base class for all kvshell errors."""

    code: ErrorCode = ErrorCode.STO_FAILED
    category: ErrorCategory = ErrorCategory.STORE

    def __init__(self, message: str, code: Optional[ErrorCode] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "category": self.category.value,
            "message": self.message,
        }


class ConfigurationError(KVShellError):
    """Startup configuration is missing or invalid."""

    code = ErrorCode.CFG_INVALID
    category = ErrorCategory.CONFIGURATION


class StoreError(KVShellError):
    """An operation on the key-value store failed."""

    code = ErrorCode.STO_FAILED
    category = ErrorCategory.STORE


class StoreOpenError(StoreError):
    """The store could not be opened."""

    code = ErrorCode.STO_OPEN


class StoreClosedError(StoreError):
    """An operation was attempted on a closed store or iterator."""

    code = ErrorCode.STO_CLOSED


class IterationError(StoreError):
    """Advancing an iterator failed."""

    code = ErrorCode.STO_ITERATE


class ValueFetchError(StoreError):
    """The value for an existing key could not be read from the value log."""

    code = ErrorCode.STO_VALUE_FETCH

    def __init__(self, message: str, key: bytes = b""):
        super().__init__(message)
        self.key = key
