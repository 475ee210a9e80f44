"""
core/policy.py -- Access control rules for every lifecycle operation.

Pure functions, no I/O. Each check_* function takes the current asset (where
there is one) and the caller, and returns a Decision naming every
precondition that failed. The engine turns a denied Decision into
PermissionDenied; the names in Decision.failed are the only detail reported
back, so a denial never echoes the record's owner or attributes.

The rules are data (TRANSFER_RULES, UPDATE_RULES) so the table that governs
the lifecycle can be read in one place:

  transfer kind               status before      caller role     recipient role  status after
  authority_to_manufacturer   TEMPLATE           Authority       Manufacturer    MANUFACTURE
  manufacturer_to_private     MANUFACTURE        Manufacturer    PrivateEntity   PRIVATE_OWNERSHIP
  private_to_private          PRIVATE_OWNERSHIP  PrivateEntity   PrivateEntity   (unchanged)
  private_to_lease_company    PRIVATE_OWNERSHIP  PrivateEntity   LeaseCompany    (unchanged)
  lease_company_to_private    PRIVATE_OWNERSHIP  LeaseCompany    PrivateEntity   (unchanged)
  private_to_scrap_merchant   PRIVATE_OWNERSHIP  PrivateEntity   ScrapMerchant   BEING_SCRAPPED

Every operation also requires the caller to be the current owner and the
asset not to be scrapped. Leasing is an ownership change inside
PRIVATE_OWNERSHIP; nothing moves an asset to LEASED_OUT.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from core.models import Asset, CallerContext, Role, Status

# ---------------------------------------------------------------------------
# Operation kinds
# ---------------------------------------------------------------------------


class TransferKind(str, Enum):
    AUTHORITY_TO_MANUFACTURER = "authority_to_manufacturer"
    MANUFACTURER_TO_PRIVATE = "manufacturer_to_private"
    PRIVATE_TO_PRIVATE = "private_to_private"
    PRIVATE_TO_LEASE_COMPANY = "private_to_lease_company"
    LEASE_COMPANY_TO_PRIVATE = "lease_company_to_private"
    PRIVATE_TO_SCRAP_MERCHANT = "private_to_scrap_merchant"


class AssetField(str, Enum):
    PRODUCER = "producer"
    GRADE = "grade"
    WEIGHT = "weight"
    QUALITY = "quality"
    SERIAL_NUMBER = "serial_number"


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransferRule:
    status: Status
    caller_role: Role
    recipient_role: Role
    next_status: Status


@dataclass(frozen=True)
class UpdateRule:
    """Preconditions for changing one asset field.

    status None means any status. caller_roles None means any role not in
    excluded_roles.
    """

    status: Optional[Status]
    caller_roles: Optional[frozenset[Role]]
    excluded_roles: frozenset[Role] = frozenset()
    serial_unassigned: bool = False


TRANSFER_RULES: dict[TransferKind, TransferRule] = {
    TransferKind.AUTHORITY_TO_MANUFACTURER: TransferRule(
        Status.TEMPLATE, Role.AUTHORITY, Role.MANUFACTURER, Status.MANUFACTURE
    ),
    TransferKind.MANUFACTURER_TO_PRIVATE: TransferRule(
        Status.MANUFACTURE, Role.MANUFACTURER, Role.PRIVATE_ENTITY, Status.PRIVATE_OWNERSHIP
    ),
    TransferKind.PRIVATE_TO_PRIVATE: TransferRule(
        Status.PRIVATE_OWNERSHIP, Role.PRIVATE_ENTITY, Role.PRIVATE_ENTITY, Status.PRIVATE_OWNERSHIP
    ),
    TransferKind.PRIVATE_TO_LEASE_COMPANY: TransferRule(
        Status.PRIVATE_OWNERSHIP, Role.PRIVATE_ENTITY, Role.LEASE_COMPANY, Status.PRIVATE_OWNERSHIP
    ),
    TransferKind.LEASE_COMPANY_TO_PRIVATE: TransferRule(
        Status.PRIVATE_OWNERSHIP, Role.LEASE_COMPANY, Role.PRIVATE_ENTITY, Status.PRIVATE_OWNERSHIP
    ),
    TransferKind.PRIVATE_TO_SCRAP_MERCHANT: TransferRule(
        Status.PRIVATE_OWNERSHIP, Role.PRIVATE_ENTITY, Role.SCRAP_MERCHANT, Status.BEING_SCRAPPED
    ),
}

_MANUFACTURER_ONLY = frozenset({Role.MANUFACTURER})

UPDATE_RULES: dict[AssetField, UpdateRule] = {
    AssetField.PRODUCER: UpdateRule(Status.MANUFACTURE, _MANUFACTURER_ONLY),
    AssetField.GRADE: UpdateRule(Status.MANUFACTURE, _MANUFACTURER_ONLY),
    AssetField.WEIGHT: UpdateRule(Status.MANUFACTURE, _MANUFACTURER_ONLY),
    AssetField.QUALITY: UpdateRule(None, None, excluded_roles=frozenset({Role.SCRAP_MERCHANT})),
    AssetField.SERIAL_NUMBER: UpdateRule(Status.MANUFACTURE, _MANUFACTURER_ONLY, serial_unassigned=True),
}


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Decision:
    allowed: bool
    failed: tuple[str, ...] = ()

    def __bool__(self) -> bool:
        return self.allowed


def _decide(failed: list[str]) -> Decision:
    return Decision(allowed=not failed, failed=tuple(failed))


def _common_failures(asset: Asset, caller: CallerContext) -> list[str]:
    """Preconditions shared by every mutation: not scrapped, caller owns it."""
    failed: list[str] = []
    if asset.scrapped:
        failed.append("scrapped")
    if asset.owner != caller.identity:
        failed.append("owner")
    return failed


def check_create(caller: CallerContext) -> Decision:
    """Only the Authority may mint a new asset."""
    return _decide([] if caller.role is Role.AUTHORITY else ["caller_role"])


def check_transfer(
    kind: TransferKind,
    asset: Asset,
    caller: CallerContext,
    recipient_role: Optional[Role],
) -> Decision:
    """Apply the TRANSFER_RULES row for kind.

    recipient_role is None when the recipient is not a registered participant;
    that always fails the counterparty check.
    """
    rule = TRANSFER_RULES[kind]
    failed = _common_failures(asset, caller)
    if asset.status is not rule.status:
        failed.append("status")
    if caller.role is not rule.caller_role:
        failed.append("caller_role")
    if recipient_role is not rule.recipient_role:
        failed.append("counterparty_role")
    return _decide(failed)


def check_update(field: AssetField, asset: Asset, caller: CallerContext) -> Decision:
    rule = UPDATE_RULES[field]
    failed = _common_failures(asset, caller)
    if rule.status is not None and asset.status is not rule.status:
        failed.append("status")
    if rule.caller_roles is not None and caller.role not in rule.caller_roles:
        failed.append("caller_role")
    if caller.role in rule.excluded_roles:
        failed.append("caller_role")
    if rule.serial_unassigned and asset.serial_number != 0:
        failed.append("serial_number")
    return _decide(failed)


def check_scrap(asset: Asset, caller: CallerContext) -> Decision:
    failed = _common_failures(asset, caller)
    if asset.status is not Status.BEING_SCRAPPED:
        failed.append("status")
    if caller.role is not Role.SCRAP_MERCHANT:
        failed.append("caller_role")
    return _decide(failed)


def can_view(asset: Asset, caller: CallerContext) -> bool:
    """Owners see their own assets; the Authority sees everything."""
    return asset.owner == caller.identity or caller.role is Role.AUTHORITY
