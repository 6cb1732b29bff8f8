from __future__ import annotations

from typing import Iterable, Mapping

from .constants import (
    ALLOCATION_TOLERANCE,
    ALLOCATION_TOTAL,
    BALANCE_DECIMALS,
    BALANCE_MAX_PASSES,
)
from .models import AllocationBucket, AllocationCategory, TargetAllocationInput
from ..errors import AllocationValidationError
from ..utils import pick, to_float


def allocation_total(allocations: Mapping[str, float]) -> float:
    return sum(to_float(v) for v in allocations.values())


def distribute_remaining(allocations: Mapping[str, float]) -> dict[str, float]:
    """Spread ``100 - sum`` evenly over the nonzero entries (all entries if none are).

    Entries are clamped at 0, so a large negative remainder can leave a residue
    after one pass; passes repeat over whatever is still positive until the map
    sums to 100. Rounding to 2 dp can leave up to a few hundredths, which is
    folded into the largest entry.
    """
    values = {k: max(0.0, to_float(v)) for k, v in allocations.items()}
    if not values:
        return {}

    for _ in range(BALANCE_MAX_PASSES):
        remaining = ALLOCATION_TOTAL - sum(values.values())
        if abs(remaining) < 1e-9:
            break
        eligible = [k for k, v in values.items() if v > 0] or list(values)
        delta = remaining / len(eligible)
        for key in eligible:
            values[key] = max(0.0, values[key] + delta)

    rounded = {k: round(v, BALANCE_DECIMALS) for k, v in values.items()}
    residue = round(ALLOCATION_TOTAL - sum(rounded.values()), BALANCE_DECIMALS)
    if residue:
        largest = max(rounded, key=rounded.get)
        rounded[largest] = round(max(0.0, rounded[largest] + residue), BALANCE_DECIMALS)
    return rounded


def validate_total(allocations: Mapping[str, float], label: str = "Total allocation") -> float:
    total = allocation_total(allocations)
    if abs(total - ALLOCATION_TOTAL) > ALLOCATION_TOLERANCE:
        raise AllocationValidationError(f"{label} must equal 100%", total=total)
    return total


def _label_for(bucket: AllocationBucket) -> str:
    if bucket is AllocationBucket.SECTOR:
        return "Total sector allocation"
    return "Total allocation"


class AllocationDraft:
    """Editable target map for one bucket. May be off 100 until it is submitted."""

    def __init__(self, bucket: AllocationBucket | str, allocations: Mapping[str, float] | None = None):
        self.bucket = AllocationBucket(bucket)
        self._allocations: dict[str, float] = {str(k): to_float(v) for k, v in (allocations or {}).items()}

    @classmethod
    def from_categories(cls, bucket, categories: Iterable[AllocationCategory | dict]) -> "AllocationDraft":
        allocations = {}
        for category in categories:
            if isinstance(category, AllocationCategory):
                allocations[category.id] = category.target_allocation or 0.0
            else:
                allocations[str(category.get("id"))] = to_float(pick(category, "targetAllocation", 0.0))
        return cls(bucket, allocations)

    def as_dict(self) -> dict[str, float]:
        return dict(self._allocations)

    def set(self, category_id: str, value: float):
        self._allocations[str(category_id)] = to_float(value)

    def reset(self):
        self._allocations = {k: 0.0 for k in self._allocations}

    def auto_balance(self) -> dict[str, float]:
        self._allocations = distribute_remaining(self._allocations)
        return self.as_dict()

    @property
    def total(self) -> float:
        return allocation_total(self._allocations)

    @property
    def deviation(self) -> float:
        return self.total - ALLOCATION_TOTAL

    @property
    def is_balanced(self) -> bool:
        return abs(self.deviation) <= ALLOCATION_TOLERANCE

    def to_payload(self) -> list[TargetAllocationInput]:
        validate_total(self._allocations, _label_for(self.bucket))
        return [TargetAllocationInput(asset_id=k, target_percentage=v) for k, v in self._allocations.items()]
