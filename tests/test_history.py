"""Test suite for conversion history stores (in-memory and Postgres)."""

import sys
from datetime import datetime, timezone
from pathlib import Path

# Add parent directory to path to import bomtree
sys.path.insert(0, str(Path(__file__).parent.parent))

import psycopg2
import pytest

from bomtree import ExpandedTable
from bomtree.exceptions import HistoryStoreError
from bomtree.history import HistoryRecord, InMemoryHistoryStore, PostgresHistoryStore
from bomtree.history import postgres_store


def make_table(rows=None) -> ExpandedTable:
    return ExpandedTable(
        headers=["SKU", "Level", "Child", "Qty"],
        rows=rows if rows is not None else [["P1", 1, "C1", 2.0]],
        column_mapping=None,
    )


# =============================================================================
# IN-MEMORY STORE
# =============================================================================

class TestInMemoryHistoryStore:

    def test_save_and_get(self):
        store = InMemoryHistoryStore()
        record = store.save(make_table(), "pump.csv")

        fetched = store.get(record.id)
        assert fetched.filename == "pump.csv"
        assert fetched.rows == [["P1", 1, "C1", 2.0]]
        assert fetched.row_count == 1
        assert store.get(-1) is None

    def test_ids_are_unique_for_fast_saves(self):
        store = InMemoryHistoryStore()
        ids = [store.save(make_table(), f"f{i}.csv").id for i in range(5)]
        assert len(set(ids)) == 5
        assert ids == sorted(ids)

    def test_saved_rows_are_copies(self):
        store = InMemoryHistoryStore()
        table = make_table()
        record = store.save(table, "pump.csv")
        table.rows[0][0] = "changed"
        assert store.get(record.id).rows[0][0] == "P1"

    def test_list_newest_first_with_metadata(self):
        store = InMemoryHistoryStore()
        store.save(make_table(), "first.csv")
        store.save(make_table([["P1", 1, "C1", 2.0], ["P1", 2, "C2", 4.0]]), "second.csv")

        listing = store.list()
        assert [entry["filename"] for entry in listing] == ["second.csv", "first.csv"]
        assert listing[0]["row_count"] == 2
        assert listing[0]["column_count"] == 4
        assert "rows" not in listing[0]
        assert store.get_latest().filename == "second.csv"

    def test_keeps_only_last_n(self):
        store = InMemoryHistoryStore(keep_last=3)
        for i in range(5):
            store.save(make_table(), f"f{i}.csv")

        assert [entry["filename"] for entry in store.list()] == ["f4.csv", "f3.csv", "f2.csv"]

    def test_put_overwrites_same_id(self):
        store = InMemoryHistoryStore()
        record = store.save(make_table(), "old.csv")
        store.put(HistoryRecord(
            id=record.id, filename="new.csv", headers=record.headers,
            rows=record.rows, converted_at=record.converted_at, row_count=record.row_count,
        ))

        assert len(store.list()) == 1
        assert store.get(record.id).filename == "new.csv"

    def test_delete_and_clear(self):
        store = InMemoryHistoryStore()
        first = store.save(make_table(), "a.csv")
        store.save(make_table(), "b.csv")

        store.delete(first.id)
        assert store.get(first.id) is None
        assert len(store.list()) == 1

        store.clear()
        assert store.list() == []
        assert store.get_latest() is None


# =============================================================================
# POSTGRES STORE
# =============================================================================

class FakeCursor:
    def __init__(self, conn):
        self.conn = conn
        self.rowcount = 0

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=None):
        if self.conn.fail_with is not None:
            raise self.conn.fail_with
        self.conn.executed.append((" ".join(sql.split()), params))

    def fetchone(self):
        return self.conn.results.pop(0) if self.conn.results else None

    def fetchall(self):
        results, self.conn.results = self.conn.results, []
        return results


class FakeConnection:
    def __init__(self):
        self.executed = []
        self.results = []
        self.fail_with = None
        self.commits = 0
        self.rollbacks = 0

    def cursor(self, cursor_factory=None):
        return FakeCursor(self)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


class FakePool:
    def __init__(self, minconn, maxconn, dsn=None):
        self.dsn = dsn
        self.conn = FakeConnection()
        self.returned = 0
        self.closed = False

    def getconn(self):
        return self.conn

    def putconn(self, conn):
        self.returned += 1

    def closeall(self):
        self.closed = True


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("BOMTREE_DB_URL", "BOMTREE_DB_HOST", "BOMTREE_DB_PORT",
                 "BOMTREE_DB_NAME", "BOMTREE_DB_USER", "BOMTREE_DB_PASSWORD"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def pg_store(monkeypatch, clean_env):
    monkeypatch.setattr(postgres_store, "SimpleConnectionPool", FakePool)
    store = PostgresHistoryStore(db_url="postgresql://u:p@localhost:5432/bom")
    store.pool = store._get_connection_pool()
    return store


class TestPostgresHistoryStore:

    def test_missing_configuration(self, clean_env):
        with pytest.raises(HistoryStoreError):
            PostgresHistoryStore()

    def test_url_from_environment(self, monkeypatch, clean_env):
        monkeypatch.setenv("BOMTREE_DB_URL", "postgresql://env@db/bom")
        assert PostgresHistoryStore().db_url == "postgresql://env@db/bom"

    def test_url_from_components(self, monkeypatch, clean_env):
        monkeypatch.setenv("BOMTREE_DB_HOST", "db")
        monkeypatch.setenv("BOMTREE_DB_NAME", "bom")
        monkeypatch.setenv("BOMTREE_DB_USER", "app")
        monkeypatch.setenv("BOMTREE_DB_PASSWORD", "secret")
        assert PostgresHistoryStore().db_url == "postgresql://app:secret@db:5432/bom"

    def test_ensure_schema(self, pg_store):
        pg_store.ensure_schema()
        sql, _ = pg_store.pool.conn.executed[0]
        assert "CREATE TABLE IF NOT EXISTS bom_results" in sql

    def test_save_upserts_then_prunes(self, pg_store):
        record = pg_store.save(make_table(), "pump.csv")
        conn = pg_store.pool.conn

        insert_sql, params = conn.executed[0]
        assert insert_sql.startswith("INSERT INTO bom_results")
        assert "ON CONFLICT (id) DO UPDATE" in insert_sql
        assert params[0] == record.id
        assert params[1] == "pump.csv"
        assert params[5] == 1

        prune_sql, prune_params = conn.executed[1]
        assert prune_sql.startswith("DELETE FROM bom_results WHERE id NOT IN")
        assert prune_params == (10,)

        assert conn.commits == 2
        assert pg_store.pool.returned == 2

    def test_get_maps_row_to_record(self, pg_store):
        converted = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)
        pg_store.pool.conn.results = [{
            "id": 42,
            "filename": "pump.csv",
            "headers": ["SKU", "Level", "Child", "Qty"],
            "rows": [["P1", 1, "C1", 2.0]],
            "converted_at": converted,
            "row_count": 1,
        }]

        record = pg_store.get(42)
        assert record.id == 42
        assert record.converted_at == converted.isoformat()
        assert pg_store.pool.conn.executed[0][1] == (42,)

    def test_get_missing_returns_none(self, pg_store):
        assert pg_store.get(7) is None
        assert pg_store.get_latest() is None

    def test_list_returns_metadata(self, pg_store):
        converted = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)
        pg_store.pool.conn.results = [
            {"id": 2, "filename": "b.csv", "converted_at": converted,
             "row_count": 3, "column_count": 4},
        ]

        listing = pg_store.list()
        assert listing == [{
            "id": 2, "filename": "b.csv", "converted_at": converted.isoformat(),
            "row_count": 3, "column_count": 4,
        }]
        assert "jsonb_array_length(headers)" in pg_store.pool.conn.executed[0][0]

    def test_database_error_rolls_back(self, pg_store):
        conn = pg_store.pool.conn
        conn.fail_with = psycopg2.OperationalError("connection lost")

        with pytest.raises(HistoryStoreError):
            pg_store.delete(1)

        assert conn.rollbacks == 1
        assert conn.commits == 0
        assert pg_store.pool.returned == 1

    def test_close_releases_pool(self, pg_store):
        pool = pg_store.pool
        pg_store.close()
        assert pool.closed
