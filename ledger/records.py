"""
ledger/records.py -- Typed record adapter over the key-value store.

Pattern: Repository + Data Mapper. AssetRecords is the repository (typed get /
save / create for Asset and AssetIndex); the asset_to_bytes / asset_from_bytes
and index_* functions are the mappers between domain dataclasses and the
JSON bytes stored on the ledger. No business rules live here.

Wire format: field names are those already used by records on the ledger
(v5cID, CoilID, prod, ...), so existing state decodes unchanged. The terminal
Status.SCRAPPED is written as status=4 with scrapped=true.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Optional

from core.errors import CorruptRecord, DuplicateAsset, NotFound
from core.models import Asset, AssetIndex, Status
from ledger.participants import Participant, ParticipantRegistry
from ledger.store import KeyValueStore

# Fixed ledger key holding the AssetIndex.
INDEX_KEY = "v5cIDs"


# ---------------------------------------------------------------------------
# Mappers (Data Mapper pattern -- domain dataclass <-> ledger bytes)
# ---------------------------------------------------------------------------


def asset_to_dict(asset: Asset) -> dict:
    scrapped = asset.status is Status.SCRAPPED
    stored_status = Status.BEING_SCRAPPED if scrapped else asset.status
    return {
        "v5cID": asset.asset_id,
        "CoilID": asset.serial_number,
        "prod": asset.producer,
        "grade": asset.grade,
        "qual": asset.quality,
        "wgt": asset.weight,
        "owner": asset.owner,
        "leaseContractID": asset.lease_contract_id,
        "status": int(stored_status),
        "scrapped": scrapped,
    }


def asset_to_bytes(asset: Asset) -> bytes:
    return json.dumps(asset_to_dict(asset)).encode("utf-8")


def asset_from_bytes(key: str, raw: bytes) -> Asset:
    """Decode a stored asset. Raises CorruptRecord on any shape or value problem."""
    try:
        data = json.loads(raw)
    except (ValueError, UnicodeDecodeError) as exc:
        raise CorruptRecord(key, f"invalid JSON ({exc})") from exc
    if not isinstance(data, dict):
        raise CorruptRecord(key, "expected a JSON object")
    try:
        raw_status = data["status"]
        if not isinstance(raw_status, int) or isinstance(raw_status, bool):
            raise CorruptRecord(key, "status must be an integer")
        status = Status(raw_status)
        scrapped = data.get("scrapped", False)
        if not isinstance(scrapped, bool):
            raise CorruptRecord(key, "scrapped must be a boolean")
        if status is Status.SCRAPPED:
            raise CorruptRecord(key, "status 5 is never stored; use scrapped=true")
        if scrapped:
            if status is not Status.BEING_SCRAPPED:
                raise CorruptRecord(key, f"scrapped record at status {status.name}")
            status = Status.SCRAPPED
        serial = data["CoilID"]
        if not isinstance(serial, int) or isinstance(serial, bool):
            raise CorruptRecord(key, "CoilID must be an integer")
        return Asset(
            asset_id=str(data["v5cID"]),
            serial_number=serial,
            producer=str(data["prod"]),
            grade=str(data["grade"]),
            quality=str(data["qual"]),
            weight=str(data["wgt"]),
            owner=str(data["owner"]),
            lease_contract_id=str(data.get("leaseContractID", "UNDEFINED")),
            status=status,
        )
    except KeyError as exc:
        raise CorruptRecord(key, f"missing field {exc.args[0]!r}") from exc
    except (TypeError, ValueError) as exc:
        raise CorruptRecord(key, str(exc)) from exc


def index_to_bytes(index: AssetIndex) -> bytes:
    return json.dumps({"v5cs": list(index.asset_ids)}).encode("utf-8")


def index_from_bytes(raw: bytes) -> AssetIndex:
    try:
        data = json.loads(raw)
    except (ValueError, UnicodeDecodeError) as exc:
        raise CorruptRecord(INDEX_KEY, f"invalid JSON ({exc})") from exc
    ids = data.get("v5cs") if isinstance(data, dict) else None
    # A freshly initialized index may carry null rather than [].
    if ids is None:
        ids = []
    if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
        raise CorruptRecord(INDEX_KEY, "v5cs must be a list of strings")
    return AssetIndex(asset_ids=list(ids))


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AssetRecords:
    """Typed access to Asset and AssetIndex records on a KeyValueStore.

    Usage:
        records = AssetRecords(store)
        records.create(asset)                 # asset + index, one transaction
        asset = records.get("AB1234567")      # raises NotFound
        records.save(asset)
        ids = records.get_index()
    """

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def exists(self, asset_id: str) -> bool:
        return self.store.get(asset_id) is not None

    def find(self, asset_id: str) -> Optional[Asset]:
        """Return the asset at asset_id, or None if no record exists."""
        raw = self.store.get(asset_id)
        if raw is None:
            return None
        return asset_from_bytes(asset_id, raw)

    def get(self, asset_id: str) -> Asset:
        asset = self.find(asset_id)
        if asset is None:
            raise NotFound(f"No asset with id {asset_id}")
        return asset

    def save(self, asset: Asset) -> None:
        self.store.put(asset.asset_id, asset_to_bytes(asset))

    def get_index(self) -> AssetIndex:
        raw = self.store.get(INDEX_KEY)
        if raw is None:
            raise CorruptRecord(INDEX_KEY, "asset index missing; ledger not initialized")
        return index_from_bytes(raw)

    def create(self, asset: Asset) -> None:
        """Write a new asset and append its id to the index in one transaction.

        The index read, the existence check and both writes happen inside
        store.transaction(), so concurrent creates neither lose index entries
        nor both claim the same id.
        """
        with self.store.transaction() as txn:
            raw_index = txn.get(INDEX_KEY, for_update=True)
            if raw_index is None:
                raise CorruptRecord(INDEX_KEY, "asset index missing; ledger not initialized")
            if txn.get(asset.asset_id) is not None:
                raise DuplicateAsset(asset.asset_id)
            index = index_from_bytes(raw_index)
            index.append(asset.asset_id)
            txn.put(asset.asset_id, asset_to_bytes(asset))
            txn.put(INDEX_KEY, index_to_bytes(index))


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------


def initialize(store: KeyValueStore, participants: Iterable[Participant] = ()) -> None:
    """Prepare a ledger for use: empty AssetIndex plus any participants.

    An existing index is left untouched, so re-running initialize against a
    live ledger never drops asset ids.
    """
    with store.transaction() as txn:
        if txn.get(INDEX_KEY, for_update=True) is None:
            txn.put(INDEX_KEY, index_to_bytes(AssetIndex()))
    registry = ParticipantRegistry(store)
    for participant in participants:
        registry.register(participant.identity, participant.role, participant.ecert)
