"""
core/models.py -- Domain types for the coil lifecycle.

Pure data containers plus the enums that make role and status comparisons
typed. All transition rules live in core/policy.py and core/engine.py; the
ledger codec lives in ledger/records.py.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum, IntEnum

# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

# Two letters followed by seven digits, e.g. "AB1234567".
ASSET_ID_PATTERN = r"[A-Za-z]{2}[0-9]{7}"
_ASSET_ID_RE = re.compile(ASSET_ID_PATTERN)

UNDEFINED = "UNDEFINED"

# Serial numbers arrive as strings of exactly this many characters.
SERIAL_NUMBER_LENGTH = 15


def is_valid_asset_id(asset_id: str) -> bool:
    return bool(asset_id) and _ASSET_ID_RE.fullmatch(asset_id) is not None


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Role(str, Enum):
    AUTHORITY = "Authority"
    MANUFACTURER = "Manufacturer"
    PRIVATE_ENTITY = "PrivateEntity"
    LEASE_COMPANY = "LeaseCompany"
    SCRAP_MERCHANT = "ScrapMerchant"


class Status(IntEnum):
    """Lifecycle stage of an asset, ordered by stage.

    SCRAPPED is the terminal variant. It is persisted as BEING_SCRAPPED with
    the scrapped flag set, so a stored record can never claim to be scrapped
    while sitting at another stage.

    LEASED_OUT is reserved: leasing is modelled as an ownership change within
    PRIVATE_OWNERSHIP and no transition reaches it.
    """

    TEMPLATE = 0
    MANUFACTURE = 1
    PRIVATE_OWNERSHIP = 2
    LEASED_OUT = 3
    BEING_SCRAPPED = 4
    SCRAPPED = 5


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


@dataclass
class Asset:
    """A steel coil and its ledger record.

    serial_number is 0 until the manufacturer assigns it (once).
    lease_contract_id is carried but never changed by any operation.
    """

    asset_id: str
    owner: str
    serial_number: int = 0
    producer: str = UNDEFINED
    grade: str = UNDEFINED
    quality: str = UNDEFINED
    weight: str = UNDEFINED
    lease_contract_id: str = UNDEFINED
    status: Status = Status.TEMPLATE

    @property
    def scrapped(self) -> bool:
        return self.status is Status.SCRAPPED

    def is_fully_manufactured(self) -> bool:
        """True once every manufacturing attribute and the serial are set."""
        attributes = (self.producer, self.grade, self.quality, self.weight)
        return all(value != UNDEFINED for value in attributes) and self.serial_number != 0


@dataclass
class AssetIndex:
    """Append-only list of every asset id ever created, in creation order."""

    asset_ids: list[str] = field(default_factory=list)

    def append(self, asset_id: str) -> None:
        self.asset_ids.append(asset_id)

    def __iter__(self):
        return iter(self.asset_ids)

    def __len__(self) -> int:
        return len(self.asset_ids)


@dataclass(frozen=True)
class CallerContext:
    """The verified identity and role of whoever invoked the current operation.

    Resolved by the transport (JWT claims in auth/, flags in the CLI) before the
    engine runs; the engine trusts it as given.
    """

    identity: str
    role: Role

    def __post_init__(self) -> None:
        # Accept "Authority" as well as Role.AUTHORITY; reject unknown roles early.
        object.__setattr__(self, "role", Role(self.role))
