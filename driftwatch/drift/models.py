from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class AllocationBucket(str, Enum):
    OVERALL = "overall"
    ASSET_CLASS = "asset_class"
    SECTOR = "sector"


class DriftMode(str, Enum):
    ABSOLUTE = "absolute"
    RELATIVE = "relative"


class Severity(str, Enum):
    SAFE = "safe"
    WARNING = "warning"
    ELEVATED = "elevated"
    CRITICAL = "critical"


class ViewModel(BaseModel):
    """Immutable record; attributes are snake_case, views for the UI are camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_view(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class DriftItem(ViewModel):
    name: str
    current_allocation: float = 0.0
    target_allocation: float = 0.0
    absolute_drift: float = 0.0
    relative_drift: float = 0.0


class DriftData(ViewModel):
    portfolio_id: str = ""
    portfolio_name: str = ""
    last_updated: str | None = None
    total_absolute_drift: float = 0.0
    items: tuple[DriftItem, ...] = ()


class DriftResponse(ViewModel):
    overall: DriftData | None = None
    asset_class: DriftData | None = None
    sector: DriftData | None = None

    def bucket(self, bucket: AllocationBucket | str) -> DriftData | None:
        return getattr(self, AllocationBucket(bucket).value)

    def has_items(self) -> bool:
        return any(data is not None and data.items for data in (self.overall, self.asset_class, self.sector))


class SetupRequired(ViewModel):
    """Backend has no targets yet; current allocations are still worth showing."""
    message: str
    current_allocations: dict[str, dict[str, float]] = {}


class AllocationCategory(ViewModel):
    id: str
    name: str
    description: str | None = None
    target_allocation: float | None = None
    current_allocation: float | None = None


class TargetAllocationInput(ViewModel):
    asset_id: str
    target_percentage: float

    def to_wire(self) -> dict:
        return {"asset_id": self.asset_id, "target_percentage": self.target_percentage}
