"""
ledger/participants.py -- Identity registry kept on the ledger.

Each participant (identity, role, enrollment certificate) is stored under
"ecert:<identity>". The lifecycle engine uses role_of() to learn the role of a
transfer's recipient; get_ecert() backs the get_ecert query.

Credential issuance and certificate parsing are not done here: the ecert is an
opaque string supplied by whoever registers the participant.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Optional

from core.errors import CorruptRecord, InvalidInput, NotFound
from core.models import Role
from ledger.store import KeyValueStore

_KEY_PREFIX = "ecert:"


@dataclass(frozen=True)
class Participant:
    identity: str
    role: Role
    ecert: str = ""


def _key(identity: str) -> str:
    return f"{_KEY_PREFIX}{identity}"


class ParticipantRegistry:
    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def register(self, identity: str, role: Role, ecert: str = "") -> Participant:
        """Add or replace the participant record for identity."""
        if not identity:
            raise InvalidInput("Participant identity must not be empty")
        participant = Participant(identity=identity, role=Role(role), ecert=ecert)
        payload = {"identity": identity, "role": participant.role.value, "ecert": ecert}
        self.store.put(_key(identity), json.dumps(payload).encode("utf-8"))
        return participant

    def get(self, identity: str) -> Optional[Participant]:
        key = _key(identity)
        raw = self.store.get(key)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            return Participant(identity=data["identity"], role=Role(data["role"]), ecert=data.get("ecert", ""))
        except (ValueError, KeyError, TypeError) as exc:
            raise CorruptRecord(key, str(exc)) from exc

    def role_of(self, identity: str) -> Optional[Role]:
        participant = self.get(identity)
        return participant.role if participant is not None else None

    def get_ecert(self, identity: str) -> bytes:
        participant = self.get(identity)
        if participant is None:
            raise NotFound(f"Couldn't retrieve ecert for user {identity}")
        return participant.ecert.encode("utf-8")
