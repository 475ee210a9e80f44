"""
core/errors.py -- Error taxonomy for ledger operations.

Every failure an operation can report is a LedgerError subclass with a stable
machine-readable code. The API layer maps codes to HTTP status; the CLI prints
them. All errors are terminal for the current operation -- nothing here is
retried and nothing is committed before one is raised.
"""

from __future__ import annotations

from collections.abc import Iterable


class LedgerError(Exception):
    code = "ledger_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidInput(LedgerError):
    """Malformed asset id, malformed serial number, or wrong argument count."""

    code = "invalid_input"


class UnknownOperation(InvalidInput):
    code = "unknown_operation"

    def __init__(self, function: str) -> None:
        super().__init__(f"Function of the name {function!r} doesn't exist.")
        self.function = function


class DuplicateAsset(LedgerError):
    code = "duplicate_asset"

    def __init__(self, asset_id: str) -> None:
        super().__init__(f"Asset {asset_id} already exists.")
        self.asset_id = asset_id


class NotFound(LedgerError):
    code = "not_found"


class PermissionDenied(LedgerError):
    """Access control denial.

    failed holds the names of the preconditions that did not hold (e.g.
    "status", "owner", "caller_role"). It never carries the record's
    contents, so a denial does not leak data the caller may not see.
    """

    code = "permission_denied"

    def __init__(self, operation: str, failed: Iterable[str] = ()) -> None:
        self.operation = operation
        self.failed = tuple(failed)
        message = f"Permission denied. {operation}"
        if self.failed:
            message += f" (failed: {', '.join(self.failed)})"
        super().__init__(message)


class NotFullyManufactured(LedgerError):
    code = "not_fully_manufactured"

    def __init__(self, asset_id: str, missing: Iterable[str] = ()) -> None:
        self.asset_id = asset_id
        self.missing = tuple(missing)
        message = f"Asset {asset_id} not fully manufactured"
        if self.missing:
            message += f" (unset: {', '.join(self.missing)})"
        super().__init__(message)


class CorruptRecord(LedgerError):
    """A stored record failed to decode. Never repaired automatically."""

    code = "corrupt_record"

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"Corrupt record at {key!r}: {reason}")
        self.key = key


class StoreError(LedgerError):
    """Opaque failure from the underlying key-value store."""

    code = "store_error"
