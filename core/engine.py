"""
core/engine.py -- The asset lifecycle state machine.

LifecycleEngine validates and applies create / transfer / update / scrap. Each
operation is one read-modify-write against the ledger: load the asset, ask
core/policy.py, mutate the dataclass, persist through AssetRecords. A denied or
failed operation raises before anything is written.

The engine holds no state between invocations. The dispatcher builds one per
invocation and hands it a logger already scoped to that invocation, so
concurrent invocations share nothing mutable. Per-key write ordering is the
store's responsibility; the engine takes no locks.

States are Status values; SCRAPPED is absorbing:

    TEMPLATE -> MANUFACTURE -> PRIVATE_OWNERSHIP -> BEING_SCRAPPED -> SCRAPPED
                                  ^      |
                                  +------+  (private / lease company owners)
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from typing import Optional, Union

from core import policy
from core.errors import DuplicateAsset, InvalidInput, NotFullyManufactured, PermissionDenied
from core.models import (
    SERIAL_NUMBER_LENGTH,
    UNDEFINED,
    Asset,
    CallerContext,
    Role,
    Status,
    is_valid_asset_id,
)
from core.policy import AssetField, Decision, TransferKind
from ledger.records import AssetRecords

RoleResolver = Callable[[str], Optional[Role]]
InvocationLogger = Union[logging.Logger, logging.LoggerAdapter]

# Go-style integer: optional sign then digits, matched against the whole string.
# int() alone would also accept whitespace, newlines and underscores.
_SERIAL_RE = re.compile(r"[+-]?[0-9]+")

# Which Asset attribute each updatable field writes to.
_FIELD_ATTRS: dict[AssetField, str] = {
    AssetField.PRODUCER: "producer",
    AssetField.GRADE: "grade",
    AssetField.WEIGHT: "weight",
    AssetField.QUALITY: "quality",
    AssetField.SERIAL_NUMBER: "serial_number",
}


def parse_serial_number(value: str) -> int:
    """Parse a serial number string.

    The string must be exactly SERIAL_NUMBER_LENGTH characters and an integer.
    Zero is rejected because 0 is the "unassigned" marker.
    """
    if len(value) != SERIAL_NUMBER_LENGTH or not _SERIAL_RE.fullmatch(value):
        raise InvalidInput("Invalid value passed for new serial number")
    serial = int(value)
    if serial == 0:
        raise InvalidInput("Serial number must be non-zero")
    return serial


def missing_attributes(asset: Asset) -> list[str]:
    missing = [name for name in ("producer", "grade", "quality", "weight") if getattr(asset, name) == UNDEFINED]
    if asset.serial_number == 0:
        missing.append("serial_number")
    return missing


class LifecycleEngine:
    """Applies lifecycle operations for one invocation.

    Args:
        records:  Typed record access over the ledger.
        role_of:  Returns the registered role of an identity, or None. Used to
                  learn the recipient's role on transfers.
        log:      Logger (or LoggerAdapter carrying invocation context).
    """

    def __init__(self, records: AssetRecords, role_of: RoleResolver, log: InvocationLogger) -> None:
        self.records = records
        self.role_of = role_of
        self.log = log

    def _enforce(self, operation: str, decision: Decision, asset_id: str) -> None:
        if not decision.allowed:
            self.log.warning("%s denied on %s: %s", operation, asset_id, ", ".join(decision.failed))
            raise PermissionDenied(operation, decision.failed)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, asset_id: str, caller: CallerContext) -> Asset:
        """Mint a new asset in TEMPLATE, owned by the creating Authority."""
        if not is_valid_asset_id(asset_id):
            raise InvalidInput(f"Invalid asset id {asset_id!r}: expected two letters followed by seven digits")
        if self.records.exists(asset_id):
            raise DuplicateAsset(asset_id)
        self._enforce("create_coil", policy.check_create(caller), asset_id)

        asset = Asset(asset_id=asset_id, owner=caller.identity)
        self.records.create(asset)
        self.log.info("created %s", asset_id)
        return asset

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    def transfer(self, kind: TransferKind, asset_id: str, recipient: str, caller: CallerContext) -> Asset:
        """Hand custody of asset_id to recipient under the rule for kind."""
        asset = self.records.get(asset_id)

        if kind is TransferKind.MANUFACTURER_TO_PRIVATE and not asset.is_fully_manufactured():
            raise NotFullyManufactured(asset_id, missing_attributes(asset))

        decision = policy.check_transfer(kind, asset, caller, self.role_of(recipient))
        self._enforce(kind.value, decision, asset_id)

        rule = policy.TRANSFER_RULES[kind]
        previous = asset.status
        asset.owner = recipient
        asset.status = rule.next_status
        self.records.save(asset)
        self.log.info(
            "%s: %s now owned by %s (%s -> %s)",
            kind.value,
            asset_id,
            recipient,
            previous.name,
            asset.status.name,
        )
        return asset

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def update(self, field: AssetField, asset_id: str, value: str, caller: CallerContext) -> Asset:
        """Set one manufacturing attribute (or the serial number) on asset_id."""
        new_value: Union[str, int] = value
        if field is AssetField.SERIAL_NUMBER:
            new_value = parse_serial_number(value)

        asset = self.records.get(asset_id)
        self._enforce(f"update_{field.value}", policy.check_update(field, asset, caller), asset_id)

        setattr(asset, _FIELD_ATTRS[field], new_value)
        self.records.save(asset)
        self.log.info("updated %s on %s", field.value, asset_id)
        return asset

    # ------------------------------------------------------------------
    # Scrap
    # ------------------------------------------------------------------

    def scrap(self, asset_id: str, caller: CallerContext) -> Asset:
        """Mark asset_id scrapped. Its record is frozen from here on."""
        asset = self.records.get(asset_id)
        self._enforce("scrap_coil", policy.check_scrap(asset, caller), asset_id)

        asset.status = Status.SCRAPPED
        self.records.save(asset)
        self.log.info("scrapped %s", asset_id)
        return asset
