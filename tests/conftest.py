"""
tests/conftest.py -- Shared test fixtures for CoilLedger tests.

This module provides:
  - store / dispatcher: an initialized in-memory ledger with the standard
    cast of participants registered
  - driver: a LedgerDriver that walks assets through the lifecycle
  - FailingIndexStore: a store wrapper whose index writes fail mid-transaction
  - api_client: TestClient wired to an isolated ledger, plus one JWT per role

Design: the API fixture uses named shared-memory SQLite URIs (not plain
:memory:) because TestClient runs route handlers in a worker thread. Plain
:memory: DBs are per-connection and would present a blank ledger to that
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the process.

DEBUG must be set before any core/auth import so get_settings() auto-generates
SECRET_KEY instead of raising ValueError. The invoke rate limit is raised so
the shared slowapi counter never trips during a test session.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager, contextmanager

# CRITICAL: set before any core/auth import (get_settings() is cached).
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("INVOKE_RATE_LIMIT", "10000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.tokens import create_access_token
from core.errors import StoreError
from core.models import CallerContext, Role
from core.operations import Dispatcher
from ledger.participants import Participant
from ledger.records import INDEX_KEY, initialize
from ledger.store import SQLKeyValueStore

# ---------------------------------------------------------------------------
# Standard participants
# ---------------------------------------------------------------------------

AUTHORITY = CallerContext("regulator", Role.AUTHORITY)
MANUFACTURER = CallerContext("mill", Role.MANUFACTURER)
ALICE = CallerContext("alice", Role.PRIVATE_ENTITY)
BOB = CallerContext("bob", Role.PRIVATE_ENTITY)
LESSOR = CallerContext("lessor", Role.LEASE_COMPANY)
SCRAPYARD = CallerContext("scrapyard", Role.SCRAP_MERCHANT)

CALLERS = (AUTHORITY, MANUFACTURER, ALICE, BOB, LESSOR, SCRAPYARD)

SERIAL = "100000000000042"

PARTICIPANTS = [Participant(c.identity, c.role, ecert=f"-----CERT {c.identity}-----") for c in CALLERS]


# ---------------------------------------------------------------------------
# Lifecycle helper
# ---------------------------------------------------------------------------


class LedgerDriver:
    """Walks assets through the lifecycle with the standard participants.

    Each method leaves the asset at the named stage, owned by the party that
    holds it there.
    """

    def __init__(self, dispatcher: Dispatcher) -> None:
        self.dispatcher = dispatcher

    def invoke(self, caller: CallerContext, function: str, *args: str) -> bytes:
        return self.dispatcher.invoke(function, list(args), caller)

    def query(self, caller: CallerContext, function: str, *args: str) -> bytes:
        return self.dispatcher.query(function, list(args), caller)

    def template(self, asset_id: str) -> str:
        self.invoke(AUTHORITY, "create_coil", asset_id)
        return asset_id

    def in_manufacture(self, asset_id: str) -> str:
        self.template(asset_id)
        self.invoke(AUTHORITY, "authority_to_manufacturer", MANUFACTURER.identity, asset_id)
        return asset_id

    def manufactured(self, asset_id: str) -> str:
        self.in_manufacture(asset_id)
        self.invoke(MANUFACTURER, "update_prod", "Tata Steel", asset_id)
        self.invoke(MANUFACTURER, "update_grade", "S355", asset_id)
        self.invoke(MANUFACTURER, "update_qual", "A", asset_id)
        self.invoke(MANUFACTURER, "update_wgt", "21500", asset_id)
        self.invoke(MANUFACTURER, "update_coilid", SERIAL, asset_id)
        return asset_id

    def privately_owned(self, asset_id: str) -> str:
        self.manufactured(asset_id)
        self.invoke(MANUFACTURER, "manufacturer_to_private", ALICE.identity, asset_id)
        return asset_id

    def being_scrapped(self, asset_id: str) -> str:
        self.privately_owned(asset_id)
        self.invoke(ALICE, "private_to_scrap_merchant", SCRAPYARD.identity, asset_id)
        return asset_id

    def scrapped(self, asset_id: str) -> str:
        self.being_scrapped(asset_id)
        self.invoke(SCRAPYARD, "scrap_coil", asset_id)
        return asset_id


# ---------------------------------------------------------------------------
# Store that fails part-way through a transaction
# ---------------------------------------------------------------------------


class _FailingIndexTransaction:
    def __init__(self, txn) -> None:
        self.txn = txn

    def get(self, key, for_update=False):
        return self.txn.get(key, for_update)

    def put(self, key, value):
        if key == INDEX_KEY:
            raise StoreError("index write failed")
        self.txn.put(key, value)


class FailingIndexStore:
    """Wraps a real store so that any write to the asset index fails.

    Writes made earlier in the same transaction reach the real database and
    must be rolled back when the index write raises.
    """

    def __init__(self, inner: SQLKeyValueStore) -> None:
        self.inner = inner

    def get(self, key):
        return self.inner.get(key)

    def put(self, key, value):
        self.write_batch([(key, value)])

    def write_batch(self, items):
        with self.transaction() as txn:
            for key, value in items:
                txn.put(key, value)

    @contextmanager
    def transaction(self):
        with self.inner.transaction() as txn:
            yield _FailingIndexTransaction(txn)


# ---------------------------------------------------------------------------
# Function-scoped fixtures -- a fresh ledger per test
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[SQLKeyValueStore, None, None]:
    """Initialized in-memory ledger with the standard participants registered."""
    s = SQLKeyValueStore("sqlite:///:memory:")
    initialize(s, PARTICIPANTS)
    yield s
    s.close()


@pytest.fixture
def dispatcher(store: SQLKeyValueStore) -> Dispatcher:
    return Dispatcher(store)


@pytest.fixture
def driver(dispatcher: Dispatcher) -> LedgerDriver:
    return LedgerDriver(dispatcher)


# ---------------------------------------------------------------------------
# API fixtures -- one TestClient per test module
# ---------------------------------------------------------------------------


def _patch_lifespan(store: SQLKeyValueStore):
    """Return a lifespan that wires the test ledger into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.store = store
        app.state.dispatcher = Dispatcher(store)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, dict[Role, str]], None, None]:
    """Yield (client, tokens) where tokens maps each Role to a Bearer JWT.

    Each test module gets its own named in-memory ledger so assets created in
    one module are invisible to the next.
    """
    db_name = request.module.__name__.rsplit(".", 1)[-1]
    s = SQLKeyValueStore(f"sqlite:///file:ledger_{db_name}?mode=memory&cache=shared&uri=true")
    initialize(s, PARTICIPANTS)

    tokens = {c.role: create_access_token(c.identity, c.role, expire_seconds=3600) for c in CALLERS if c is not BOB}

    app.router.lifespan_context = _patch_lifespan(s)

    with TestClient(app, base_url="http://localhost", raise_server_exceptions=True) as client:
        yield client, tokens

    s.close()


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
