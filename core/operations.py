"""
core/operations.py -- Operation surface: name + args + caller -> result bytes.

Two entry points mirror the ledger's invoke/query split:
  Dispatcher.invoke()  -- write operations (may mutate the ledger)
  Dispatcher.query()   -- read operations (never mutate)

Operation names form closed enums. The handler tables are checked against the
enums when the Dispatcher is built, so an operation can't be added to an enum
without a handler. Unknown names and wrong argument counts are rejected here,
before any engine code runs.

Each call gets a fresh LifecycleEngine / QueryService and a logger scoped to
that call (function, caller identity, role). No module-level logger is used
by the engine.

Usage:
    dispatcher = Dispatcher(SQLKeyValueStore())
    caller = CallerContext("regulator", Role.AUTHORITY)
    dispatcher.invoke("create_coil", ["AB1234567"], caller)      # -> b""
    dispatcher.query("get_coils", [], caller)                    # -> b"[...]"
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from core.engine import LifecycleEngine
from core.errors import InvalidInput, UnknownOperation
from core.models import CallerContext
from core.policy import AssetField, TransferKind
from core.queries import QueryService
from ledger.participants import ParticipantRegistry
from ledger.records import AssetRecords, asset_to_dict
from ledger.store import KeyValueStore

PING_RESPONSE = b"Hello, world!"


class WriteOperation(str, Enum):
    CREATE_COIL = "create_coil"
    AUTHORITY_TO_MANUFACTURER = "authority_to_manufacturer"
    MANUFACTURER_TO_PRIVATE = "manufacturer_to_private"
    PRIVATE_TO_PRIVATE = "private_to_private"
    PRIVATE_TO_LEASE_COMPANY = "private_to_lease_company"
    LEASE_COMPANY_TO_PRIVATE = "lease_company_to_private"
    PRIVATE_TO_SCRAP_MERCHANT = "private_to_scrap_merchant"
    UPDATE_PROD = "update_prod"
    UPDATE_GRADE = "update_grade"
    UPDATE_QUAL = "update_qual"
    UPDATE_COILID = "update_coilid"
    UPDATE_WGT = "update_wgt"
    SCRAP_COIL = "scrap_coil"
    PING = "ping"


class ReadOperation(str, Enum):
    GET_COIL_DETAILS = "get_coil_details"
    CHECK_UNIQUE_V5C = "check_unique_v5c"
    GET_COILS = "get_coils"
    GET_ECERT = "get_ecert"
    PING = "ping"


_UPDATE_FIELDS: dict[WriteOperation, AssetField] = {
    WriteOperation.UPDATE_PROD: AssetField.PRODUCER,
    WriteOperation.UPDATE_GRADE: AssetField.GRADE,
    WriteOperation.UPDATE_QUAL: AssetField.QUALITY,
    WriteOperation.UPDATE_COILID: AssetField.SERIAL_NUMBER,
    WriteOperation.UPDATE_WGT: AssetField.WEIGHT,
}


# ---------------------------------------------------------------------------
# Per-invocation logging
# ---------------------------------------------------------------------------


class InvocationLogAdapter(logging.LoggerAdapter):
    """Prefixes every message with the invocation's function and caller.

    The same values are attached to each LogRecord as attributes (function,
    caller, role) for handlers that format structured output.
    """

    def process(self, msg, kwargs):
        kwargs.setdefault("extra", {}).update(self.extra)
        ctx = self.extra
        return f"[{ctx['function']} caller={ctx['caller']} role={ctx['role']}] {msg}", kwargs


@dataclass
class _Invocation:
    engine: LifecycleEngine
    queries: QueryService
    participants: ParticipantRegistry
    caller: CallerContext


Handler = Callable[[_Invocation, Sequence[str]], bytes]


def _asset_json(asset) -> bytes:
    return json.dumps(asset_to_dict(asset)).encode("utf-8")


# ---------------------------------------------------------------------------
# Write handlers
# ---------------------------------------------------------------------------


def _create(inv: _Invocation, args: Sequence[str]) -> bytes:
    inv.engine.create(args[0], inv.caller)
    return b""


def _transfer(kind: TransferKind) -> Handler:
    def handler(inv: _Invocation, args: Sequence[str]) -> bytes:
        recipient, asset_id = args
        inv.engine.transfer(kind, asset_id, recipient, inv.caller)
        return b""

    return handler


def _update(field: AssetField) -> Handler:
    def handler(inv: _Invocation, args: Sequence[str]) -> bytes:
        new_value, asset_id = args
        inv.engine.update(field, asset_id, new_value, inv.caller)
        return b""

    return handler


def _scrap(inv: _Invocation, args: Sequence[str]) -> bytes:
    inv.engine.scrap(args[0], inv.caller)
    return b""


def _ping(inv: _Invocation, args: Sequence[str]) -> bytes:
    return PING_RESPONSE


# ---------------------------------------------------------------------------
# Read handlers
# ---------------------------------------------------------------------------


def _get_details(inv: _Invocation, args: Sequence[str]) -> bytes:
    return _asset_json(inv.queries.get_asset_details(args[0], inv.caller))


def _check_unique(inv: _Invocation, args: Sequence[str]) -> bytes:
    return b"true" if inv.queries.check_unique(args[0]) else b"false"


def _get_coils(inv: _Invocation, args: Sequence[str]) -> bytes:
    assets = inv.queries.list_assets(inv.caller)
    return json.dumps([asset_to_dict(a) for a in assets]).encode("utf-8")


def _get_ecert(inv: _Invocation, args: Sequence[str]) -> bytes:
    return inv.participants.get_ecert(args[0])


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


def _build_write_table() -> dict[WriteOperation, tuple[int, Handler]]:
    table: dict[WriteOperation, tuple[int, Handler]] = {
        WriteOperation.CREATE_COIL: (1, _create),
        WriteOperation.SCRAP_COIL: (1, _scrap),
        WriteOperation.PING: (0, _ping),
    }
    for kind in TransferKind:
        table[WriteOperation(kind.value)] = (2, _transfer(kind))
    for op, field in _UPDATE_FIELDS.items():
        table[op] = (2, _update(field))
    return table


_READ_TABLE: dict[ReadOperation, tuple[int, Handler]] = {
    ReadOperation.GET_COIL_DETAILS: (1, _get_details),
    ReadOperation.CHECK_UNIQUE_V5C: (1, _check_unique),
    ReadOperation.GET_COILS: (0, _get_coils),
    ReadOperation.GET_ECERT: (1, _get_ecert),
    ReadOperation.PING: (0, _ping),
}


def _check_complete(table: dict, enum: type[Enum]) -> None:
    missing = set(enum) - set(table)
    if missing:
        names = ", ".join(sorted(m.value for m in missing))
        raise RuntimeError(f"No handler registered for {enum.__name__}: {names}")


class Dispatcher:
    """Routes operation names to lifecycle and query handlers.

    Args:
        store:  The ledger's KeyValueStore.
        logger: Base logger; each invocation logs through an adapter over it.
                Defaults to the "coilledger.ledger" logger.
    """

    def __init__(self, store: KeyValueStore, logger: Optional[logging.Logger] = None) -> None:
        self.store = store
        self.logger = logger or logging.getLogger("coilledger.ledger")
        self._writes = _build_write_table()
        self._reads = dict(_READ_TABLE)
        _check_complete(self._writes, WriteOperation)
        _check_complete(self._reads, ReadOperation)

    def invoke(self, function: str, args: Sequence[str], caller: CallerContext) -> bytes:
        """Run a write operation. Returns the result payload (empty for mutations)."""
        try:
            op = WriteOperation(function)
        except ValueError:
            raise UnknownOperation(function) from None
        arity, handler = self._writes[op]
        return self._run(op.value, arity, handler, args, caller)

    def query(self, function: str, args: Sequence[str], caller: CallerContext) -> bytes:
        """Run a read-only operation and return its payload."""
        try:
            op = ReadOperation(function)
        except ValueError:
            raise UnknownOperation(function) from None
        arity, handler = self._reads[op]
        return self._run(op.value, arity, handler, args, caller)

    def _run(
        self,
        function: str,
        arity: int,
        handler: Handler,
        args: Sequence[str],
        caller: CallerContext,
    ) -> bytes:
        if len(args) != arity:
            raise InvalidInput(f"Incorrect number of arguments for {function}: expected {arity}, got {len(args)}")
        log = InvocationLogAdapter(
            self.logger,
            {"function": function, "caller": caller.identity, "role": caller.role.value},
        )
        participants = ParticipantRegistry(self.store)
        records = AssetRecords(self.store)
        invocation = _Invocation(
            engine=LifecycleEngine(records, participants.role_of, log),
            queries=QueryService(records, log),
            participants=participants,
            caller=caller,
        )
        log.debug("args=%s", list(args))
        return handler(invocation, list(args))
