"""
Tests for the sqlite-backed key/value store.
"""
import sqlite3

from core.storage import LocalStore


class TestLocalStore:

    def test_json_round_trip_survives_reopen(self, tmp_path):
        path = str(tmp_path / "kv.sqlite3")
        LocalStore(path).set_json("vouchers:custom", [{"id": "a", "code": "X"}])

        assert LocalStore(path).get_json("vouchers:custom") == [{"id": "a", "code": "X"}]

    def test_missing_key_returns_default(self, store):
        assert store.get_json("nope") is None
        assert store.get_json("nope", {}) == {}

    def test_remove(self, store):
        store.set_json("k", 1)
        store.remove("k")
        assert store.get_json("k") is None

    def test_keys_are_filtered_by_prefix(self, store):
        store.set_json("voucher-cache:b", {})
        store.set_json("voucher-cache:a", {})
        store.set_json("vouchers:custom", [])

        assert store.keys("voucher-cache:") == ["voucher-cache:a", "voucher-cache:b"]

    def test_prefix_is_literal(self, store):
        store.set_json("a%b", 1)
        store.set_json("axb", 1)
        assert store.keys("a%") == ["a%b"]

    def test_items_return_raw_values_in_key_order(self, store):
        store.set_json("voucher-cache:b", {"n": 2})
        store.set_json("voucher-cache:a", {"n": 1})
        store.set_json("vouchers:custom", [])

        assert store.items("voucher-cache:") == [
            ("voucher-cache:a", '{"n": 1}'),
            ("voucher-cache:b", '{"n": 2}'),
        ]

    def test_unreadable_value_yields_default(self, store):
        store.set_raw("broken", "{not json")
        assert store.get_json("broken", "fallback") == "fallback"

    def test_unserialisable_value_is_not_written(self, store):
        store.set_json("bad", {"obj": object()})
        assert store.get_json("bad") is None


class TestStorageFailure:

    def _break_writes(self, store, monkeypatch):
        real_connect = store._connect

        class ReadOnly:
            def __init__(self):
                self.con = real_connect()

            def __enter__(self):
                return self

            def __exit__(self, *exc):
                self.con.close()
                return False

            def execute(self, sql, params=()):
                if sql.lstrip().upper().startswith(("INSERT", "DELETE")):
                    raise sqlite3.OperationalError("database or disk is full")
                return self.con.execute(sql, params)

            def commit(self):
                self.con.commit()

        monkeypatch.setattr(store, "_connect", ReadOnly)

    def test_failed_write_is_kept_in_memory(self, store, monkeypatch):
        self._break_writes(store, monkeypatch)

        store.set_json("vouchers:categories", {"grabfood": True})

        assert store.get_json("vouchers:categories") == {"grabfood": True}
        assert "vouchers:categories" in store.keys("vouchers:")

    def test_failed_write_is_not_durable(self, store, monkeypatch):
        self._break_writes(store, monkeypatch)
        store.set_json("k", 1)

        assert LocalStore(store.db_path).get_json("k") is None

    def test_failed_delete_masks_key(self, store, monkeypatch):
        store.set_json("voucher-cache:x", {"a": 1})
        self._break_writes(store, monkeypatch)

        store.remove("voucher-cache:x")

        assert store.get_json("voucher-cache:x") is None
        assert store.keys("voucher-cache:") == []

    def test_items_merge_the_in_memory_overlay(self, store, monkeypatch):
        store.set_json("voucher-cache:gone", {"a": 1})
        store.set_json("voucher-cache:kept", {"a": 2})
        self._break_writes(store, monkeypatch)

        store.remove("voucher-cache:gone")
        store.set_json("voucher-cache:new", {"a": 3})

        assert store.items("voucher-cache:") == [
            ("voucher-cache:kept", '{"a": 2}'),
            ("voucher-cache:new", '{"a": 3}'),
        ]
