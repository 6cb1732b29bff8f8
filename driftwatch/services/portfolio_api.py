from __future__ import annotations

from typing import Iterable

import structlog

from .http import BackendClient
from ..drift.models import AllocationBucket, AllocationCategory, DriftResponse, SetupRequired, TargetAllocationInput
from ..drift.normalizer import normalize_category, normalize_drift_response

log = structlog.get_logger()

DRIFT_PATH = "/portfolio/drift/"
CATEGORY_PATHS = {
    AllocationBucket.ASSET_CLASS: "/portfolio/asset-classes/",
    AllocationBucket.SECTOR: "/portfolio/sectors/",
}
TARGET_PATHS = {
    AllocationBucket.ASSET_CLASS: "/portfolio/target-allocations/",
    AllocationBucket.SECTOR: "/portfolio/sector-target-allocations/",
}


def _categories(payload) -> list[AllocationCategory]:
    if isinstance(payload, dict):
        payload = payload.get("results") or payload.get("items") or []
    if not isinstance(payload, list):
        return []
    return [normalize_category(row) for row in payload if isinstance(row, dict)]


def _category_bucket(bucket: AllocationBucket | str) -> AllocationBucket:
    bucket = AllocationBucket(bucket)
    if bucket is AllocationBucket.OVERALL:
        raise ValueError("overall bucket has no editable categories")
    return bucket


class PortfolioApi:
    def __init__(self, client: BackendClient):
        self.client = client

    async def get_drift(self) -> DriftResponse | SetupRequired:
        payload = await self.client.get(DRIFT_PATH)
        return normalize_drift_response(payload)

    async def get_categories(self, bucket: AllocationBucket | str) -> list[AllocationCategory]:
        bucket = _category_bucket(bucket)
        return _categories(await self.client.get(CATEGORY_PATHS[bucket]))

    async def get_asset_classes(self) -> list[AllocationCategory]:
        return await self.get_categories(AllocationBucket.ASSET_CLASS)

    async def get_sectors(self) -> list[AllocationCategory]:
        return await self.get_categories(AllocationBucket.SECTOR)

    async def save_target_allocations(self, bucket: AllocationBucket | str,
                                      inputs: Iterable[TargetAllocationInput]) -> list[AllocationCategory]:
        bucket = _category_bucket(bucket)
        body = [i.to_wire() for i in inputs]
        payload = await self.client.post(TARGET_PATHS[bucket], json_body=body)
        log.info("target_allocations_saved", bucket=bucket.value, count=len(body))
        return _categories(payload)
