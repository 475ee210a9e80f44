"""
ledger/store.py -- Key-value store of record for coil ledger state.

The lifecycle engine only ever sees the KeyValueStore protocol: get, put, an
all-or-nothing write_batch, and transaction() for read-modify-write sequences
that must not interleave with another writer. SQLKeyValueStore is the shipped
implementation, backed by SQLAlchemy Core so the same code runs against SQLite
(default, and in tests) or PostgreSQL by changing the connection string.

Write serialization is the database's job:
  SQLite      transaction() opens with BEGIN IMMEDIATE, which takes the
              database write lock up front. A second writer waits on the
              driver's busy timeout until the first commits.
  PostgreSQL  reads made with for_update=True inside transaction() issue
              SELECT ... FOR UPDATE, locking the row until commit.

Usage:
    store = SQLKeyValueStore()                                # SQLite default
    store = SQLKeyValueStore("postgresql://user:pw@host/db")  # PostgreSQL
    store.put("AB1234567", b"{...}")
    with store.transaction() as txn:
        index = txn.get("v5cIDs", for_update=True)
        txn.put("v5cIDs", b"{...}")
    raw = store.get("AB1234567")                               # bytes or None
    store.close()
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import AbstractContextManager, contextmanager
from pathlib import Path
from typing import Optional, Protocol

from sqlalchemy import Column, LargeBinary, MetaData, String, Table, create_engine, event, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from core.errors import StoreError

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'coilledger.db'}"


class KeyValueTransaction(Protocol):
    def get(self, key: str, for_update: bool = False) -> Optional[bytes]: ...

    def put(self, key: str, value: bytes) -> None: ...


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[bytes]: ...

    def put(self, key: str, value: bytes) -> None: ...

    def write_batch(self, items: Iterable[tuple[str, bytes]]) -> None: ...

    def transaction(self) -> AbstractContextManager[KeyValueTransaction]: ...


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_state = Table(
    "ledger_state",
    metadata,
    Column("key", String(255), primary_key=True),
    Column("value", LargeBinary, nullable=False),
)


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _configure_sqlite(dbapi_conn, connection_record) -> None:
    """Enable WAL and hand transaction control to SQLAlchemy.

    pysqlite's own implicit BEGIN is switched off (isolation_level=None) so
    _begin_sqlite below decides the locking mode of every transaction. Set
    per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.isolation_level = None
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _begin_sqlite(conn: Connection) -> None:
    mode = "IMMEDIATE" if conn.get_execution_options().get("immediate") else "DEFERRED"
    conn.exec_driver_sql(f"BEGIN {mode}")


def _upsert(conn: Connection, key: str, value: bytes) -> None:
    result = conn.execute(_state.update().where(_state.c.key == key).values(value=value))
    if result.rowcount == 0:
        conn.execute(_state.insert().values(key=key, value=value))


class _SQLTransaction:
    """A KeyValueTransaction bound to one open SQLAlchemy connection."""

    def __init__(self, conn: Connection) -> None:
        self.conn = conn

    def get(self, key: str, for_update: bool = False) -> Optional[bytes]:
        stmt = select(_state.c.value).where(_state.c.key == key)
        if for_update:
            # Rendered as FOR UPDATE where the dialect supports it; SQLite
            # drops it and relies on BEGIN IMMEDIATE instead.
            stmt = stmt.with_for_update()
        row = self.conn.execute(stmt).fetchone()
        return bytes(row.value) if row is not None else None

    def put(self, key: str, value: bytes) -> None:
        _upsert(self.conn, key, value)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SQLKeyValueStore:
    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # The API serves requests from a thread pool; one pooled SQLite
            # connection may be used from more than one thread.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _configure_sqlite)
            event.listen(self.engine, "begin", _begin_sqlite)
        metadata.create_all(self.engine)

    def get(self, key: str) -> Optional[bytes]:
        """Return the stored bytes for key, or None if nothing is stored there."""
        try:
            with self.engine.connect() as conn:
                row = conn.execute(select(_state.c.value).where(_state.c.key == key)).fetchone()
        except SQLAlchemyError as exc:
            raise StoreError(f"Error reading {key!r}: {exc}") from exc
        return bytes(row.value) if row is not None else None

    def put(self, key: str, value: bytes) -> None:
        """Store value at key, replacing any existing entry."""
        self.write_batch([(key, value)])

    def write_batch(self, items: Iterable[tuple[str, bytes]]) -> None:
        """Write every (key, value) pair in one transaction, or none of them."""
        with self.transaction() as txn:
            for key, value in items:
                txn.put(key, value)

    @contextmanager
    def transaction(self) -> Iterator[_SQLTransaction]:
        """Run a serialized read-modify-write.

        Commits on clean exit. Any exception raised inside the block, ledger
        errors included, rolls back every write made through the transaction.
        """
        try:
            with self.engine.connect() as conn:
                conn.execution_options(immediate=True)
                with conn.begin():
                    yield _SQLTransaction(conn)
        except SQLAlchemyError as exc:
            raise StoreError(f"Error writing ledger state: {exc}") from exc

    def close(self) -> None:
        self.engine.dispose()
