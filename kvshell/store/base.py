"""
store/base.py - Key-value store interface

The CLI only ever talks to a store through these types. Keys and values are
raw bytes; every stored value carries a single user meta byte.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Iterator as TypingIterator, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from kvshell.errors import StoreClosedError

MAX_USER_META = 0xFF


class StoreOptions(BaseModel):
    """Options used to open a store."""

    model_config = ConfigDict(frozen=True)

    dir: str = Field(..., min_length=1, description="Directory holding the key index")
    value_dir: Optional[str] = Field(
        None,
        validate_default=True,
        description="Directory holding the value log (defaults to dir)",
    )
    sync_writes: bool = Field(True, description="Flush every write to disk before returning")
    create_if_missing: bool = Field(True, description="Create missing directories on open")

    @field_validator("value_dir")
    @classmethod
    def _default_value_dir(cls, v: Optional[str], info: ValidationInfo) -> Optional[str]:
        return v or info.data.get("dir")


@dataclass
class IteratorOptions:
    """Options for a store iterator."""

    prefetch_values: bool = True
    prefetch_size: int = 100
    reverse: bool = False


DEFAULT_ITERATOR_OPTIONS = IteratorOptions()


class Item:
    """A key with its user meta byte and a deferred value."""

    __slots__ = ("key", "user_meta", "_loader")

    def __init__(self, key: bytes, user_meta: int = 0, loader: Optional[Callable[[], bytes]] = None):
        self.key = key
        self.user_meta = user_meta
        self._loader = loader

    def value(self) -> bytes:
        """
        Return the value, reading it from the value log if needed.

        Raises:
            ValueFetchError: if the value cannot be read.
        """
        if self._loader is None:
            return b""
        return self._loader()

    def __repr__(self) -> str:
        return f"Item(key={self.key!r}, user_meta={self.user_meta})"


class Iterator(ABC):
    """
    Forward-only cursor over the store's key space.

    Use either the explicit protocol::

        it.rewind()
        while it.valid():
            item = it.item()
            it.next()

    or iterate it directly; both start from the first key. Close it when
    done, preferably through ``with``.
    """

    def __init__(self):
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @abstractmethod
    def rewind(self) -> None:
        """Position on the first key."""

    @abstractmethod
    def valid(self) -> bool:
        """Whether the iterator points at an item."""

    @abstractmethod
    def next(self) -> None:
        """Advance to the following key."""

    @abstractmethod
    def item(self) -> Item:
        """The current item."""

    def close(self) -> None:
        self._closed = True

    def _check_open(self) -> None:
        if self._closed:
            raise StoreClosedError("iterator is closed")

    def __iter__(self) -> TypingIterator[Item]:
        self.rewind()
        while self.valid():
            yield self.item()
            self.next()

    def __enter__(self) -> "Iterator":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class KVStore(ABC):
    """An open key-value store handle."""

    @abstractmethod
    def get(self, key: bytes) -> Item:
        """Look up a key. Absent keys yield an item with an empty value."""

    @abstractmethod
    def set(self, key: bytes, value: bytes, user_meta: int = 0) -> None:
        """Store a value under a key, replacing any previous value."""

    @abstractmethod
    def delete(self, key: bytes) -> None:
        """Remove a key. Removing an absent key is not an error."""

    @abstractmethod
    def new_iterator(self, options: IteratorOptions = DEFAULT_ITERATOR_OPTIONS) -> Iterator:
        """Open a fresh iterator over the whole key space."""

    @abstractmethod
    def close(self) -> None:
        """Release the store. Safe to call more than once."""

    def __enter__(self) -> "KVStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
