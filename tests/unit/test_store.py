"""
tests/unit/test_store.py - Tests for the SQLite-backed key-value store.
"""

import pytest
from pydantic import ValidationError

from kvshell.errors import (
    ErrorCode,
    StoreClosedError,
    StoreError,
    StoreOpenError,
    ValueFetchError,
)
from kvshell.store import IteratorOptions, StoreOptions, open_store
from kvshell.store.sqlite_backend import INDEX_FILE, VALUE_LOG_FILE


def _drop_value(store, key: bytes) -> None:
    """Remove a key's value log entry, leaving the index pointing at nothing."""
    conn = store._connection()
    conn.execute("DELETE FROM vlog.entries WHERE key = ?", (key,))
    conn.commit()


class TestStoreOptions:
    """Tests for StoreOptions validation."""

    def test_value_dir_defaults_to_dir(self):
        opts = StoreOptions(dir="/data/db")
        assert opts.value_dir == "/data/db"

    def test_explicit_value_dir(self):
        opts = StoreOptions(dir="/data/db", value_dir="/data/vlog")
        assert opts.value_dir == "/data/vlog"

    def test_empty_dir_rejected(self):
        with pytest.raises(ValidationError):
            StoreOptions(dir="")

    def test_options_frozen(self):
        opts = StoreOptions(dir="/data/db")
        with pytest.raises(ValidationError):
            opts.dir = "/elsewhere"


class TestOpen:
    """Tests for opening stores."""

    def test_creates_directories_and_files(self, tmp_path):
        index_dir = tmp_path / "index"
        value_dir = tmp_path / "values"
        with open_store(StoreOptions(dir=str(index_dir), value_dir=str(value_dir))):
            pass
        assert (index_dir / INDEX_FILE).exists()
        assert (value_dir / VALUE_LOG_FILE).exists()
        assert not (index_dir / VALUE_LOG_FILE).exists()

    def test_missing_dir_without_create(self, tmp_path):
        opts = StoreOptions(dir=str(tmp_path / "absent"), create_if_missing=False)
        with pytest.raises(StoreOpenError) as exc_info:
            open_store(opts)
        assert exc_info.value.code == ErrorCode.STO_OPEN

    def test_dir_is_a_file(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        with pytest.raises(StoreOpenError):
            open_store(StoreOptions(dir=str(blocker)))

    def test_data_persists_across_reopen(self, tmp_path):
        opts = StoreOptions(dir=str(tmp_path / "db"), sync_writes=False)
        with open_store(opts) as s:
            s.set(b"k", b"v")
        with open_store(opts) as s:
            assert s.get(b"k").value() == b"v"


class TestGetSetDelete:
    """Tests for point operations."""

    def test_set_then_get(self, store):
        store.set(b"alpha", b"one")
        item = store.get(b"alpha")
        assert item.key == b"alpha"
        assert item.value() == b"one"
        assert item.user_meta == 0

    def test_get_missing_is_empty(self, store):
        assert store.get(b"nope").value() == b""

    def test_overwrite_replaces_value_and_meta(self, store):
        store.set(b"k", b"first", 3)
        store.set(b"k", b"second", 7)
        item = store.get(b"k")
        assert item.value() == b"second"
        assert item.user_meta == 7

    def test_overwrite_drops_old_value_log_entry(self, store):
        store.set(b"k", b"first")
        store.set(b"k", b"second")
        count = store._connection().execute("SELECT COUNT(*) FROM vlog.entries").fetchone()[0]
        assert count == 1

    def test_delete(self, store):
        store.set(b"k", b"v")
        store.delete(b"k")
        assert store.get(b"k").value() == b""

    def test_delete_missing_is_noop(self, store):
        store.delete(b"never-set")

    def test_meta_must_fit_in_a_byte(self, store):
        with pytest.raises(StoreError):
            store.set(b"k", b"v", 256)
        with pytest.raises(StoreError):
            store.set(b"k", b"v", -1)
        assert store.get(b"k").value() == b""

    def test_empty_key_rejected(self, store):
        with pytest.raises(StoreError):
            store.set(b"", b"v")
        with pytest.raises(StoreError):
            store.get(b"")

    def test_binary_values(self, store):
        store.set(b"bin", b"\x00\xff\x10")
        assert store.get(b"bin").value() == b"\x00\xff\x10"

    def test_missing_value_log_entry(self, store):
        store.set(b"k", b"v")
        _drop_value(store, b"k")
        with pytest.raises(ValueFetchError) as exc_info:
            store.get(b"k")
        assert exc_info.value.key == b"k"


class TestIterator:
    """Tests for iteration."""

    def _seed(self, store, keys):
        for k in keys:
            store.set(k, b"v-" + k)

    def test_bytewise_key_order(self, store):
        self._seed(store, [b"b", b"a", b"B", b"ab", b"\xff"])
        with store.new_iterator() as it:
            keys = [item.key for item in it]
        assert keys == [b"B", b"a", b"ab", b"b", b"\xff"]

    def test_explicit_protocol(self, store):
        self._seed(store, [b"x", b"y"])
        it = store.new_iterator()
        seen = []
        it.rewind()
        while it.valid():
            item = it.item()
            seen.append((item.key, item.value()))
            it.next()
        it.close()
        assert seen == [(b"x", b"v-x"), (b"y", b"v-y")]

    def test_reverse(self, store):
        self._seed(store, [b"a", b"b", b"c"])
        with store.new_iterator(IteratorOptions(reverse=True)) as it:
            assert [item.key for item in it] == [b"c", b"b", b"a"]

    @pytest.mark.parametrize("prefetch_size", [1, 2, 3, 100])
    def test_batches_cover_every_key(self, store, prefetch_size):
        keys = [f"k{i:02d}".encode() for i in range(7)]
        self._seed(store, keys)
        with store.new_iterator(IteratorOptions(prefetch_size=prefetch_size)) as it:
            assert [item.key for item in it] == keys

    def test_lazy_values(self, store):
        self._seed(store, [b"a", b"b"])
        with store.new_iterator(IteratorOptions(prefetch_values=False)) as it:
            assert [item.value() for item in it] == [b"v-a", b"v-b"]

    def test_empty_store(self, store):
        with store.new_iterator() as it:
            it.rewind()
            assert not it.valid()

    def test_rewind_restarts(self, store):
        self._seed(store, [b"a", b"b"])
        with store.new_iterator() as it:
            assert len(list(it)) == 2
            assert len(list(it)) == 2

    def test_value_fetch_failure_is_per_item(self, store):
        self._seed(store, [b"a", b"b", b"c"])
        _drop_value(store, b"b")
        with store.new_iterator() as it:
            items = list(it)
        assert [i.key for i in items] == [b"a", b"b", b"c"]
        with pytest.raises(ValueFetchError):
            items[1].value()
        assert items[2].value() == b"v-c"

    def test_closed_iterator_raises(self, store):
        it = store.new_iterator()
        it.close()
        it.close()
        assert it.closed
        with pytest.raises(StoreClosedError):
            it.rewind()

    def test_store_close_closes_iterators(self, tmp_path):
        s = open_store(StoreOptions(dir=str(tmp_path / "db")))
        it = s.new_iterator()
        s.close()
        assert it.closed


class TestClose:
    """Tests for store shutdown."""

    def test_operations_after_close(self, tmp_path):
        s = open_store(StoreOptions(dir=str(tmp_path / "db")))
        s.close()
        s.close()
        assert s.closed
        with pytest.raises(StoreClosedError):
            s.get(b"k")
        with pytest.raises(StoreClosedError):
            s.set(b"k", b"v")
        with pytest.raises(StoreClosedError):
            s.new_iterator()


class TestErrorTaxonomy:
    """Tests for error codes and serialization."""

    def test_subclass_codes(self):
        assert StoreOpenError("x").code is ErrorCode.STO_OPEN
        assert ValueFetchError("x", key=b"k").code is ErrorCode.STO_VALUE_FETCH

    def test_explicit_code_overrides_class_code(self):
        assert StoreError("x", code=ErrorCode.STO_READ).code is ErrorCode.STO_READ

    def test_to_dict(self):
        d = StoreClosedError("store is closed").to_dict()
        assert d == {"code": 2002, "category": "store", "message": "store is closed"}
