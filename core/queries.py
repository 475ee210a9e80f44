"""
core/queries.py -- Read-only projections over the ledger.

QueryService never writes. Visibility follows policy.can_view: an asset is
visible to its owner and to the Authority.
"""

from __future__ import annotations

from core import policy
from core.errors import InvalidInput, PermissionDenied
from core.models import Asset, CallerContext, is_valid_asset_id
from ledger.records import AssetRecords


class QueryService:
    def __init__(self, records: AssetRecords, log) -> None:
        self.records = records
        self.log = log

    def get_asset_details(self, asset_id: str, caller: CallerContext) -> Asset:
        """Return the full record if the caller may see it."""
        asset = self.records.get(asset_id)
        if not policy.can_view(asset, caller):
            self.log.warning("get_coil_details denied on %s", asset_id)
            raise PermissionDenied("get_coil_details", ("owner", "caller_role"))
        return asset

    def list_assets(self, caller: CallerContext) -> list[Asset]:
        """Return every asset the caller may see, in creation order.

        Assets the caller cannot see are skipped rather than reported. A record
        that fails to load (missing or corrupt) still fails the whole listing.
        """
        visible: list[Asset] = []
        for asset_id in self.records.get_index():
            asset = self.records.get(asset_id)
            if policy.can_view(asset, caller):
                visible.append(asset)
        self.log.debug("get_coils returned %d asset(s)", len(visible))
        return visible

    def check_unique(self, asset_id: str) -> bool:
        """True if nothing is stored at asset_id. Never changes state."""
        if not is_valid_asset_id(asset_id):
            raise InvalidInput(f"Invalid asset id {asset_id!r}: expected two letters followed by seven digits")
        return not self.records.exists(asset_id)
