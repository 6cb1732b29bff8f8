from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from .constants import OVERALL_ROW_NAME
from .models import DriftData, DriftItem, DriftMode


@dataclass(frozen=True)
class DriftAggregate:
    total_absolute_drift: float
    sorted_by_magnitude: tuple[DriftItem, ...]


def is_synthetic(item: DriftItem) -> bool:
    return item.name == OVERALL_ROW_NAME


def real_items(items: Iterable[DriftItem]) -> list[DriftItem]:
    return [i for i in items if not is_synthetic(i)]


def drift_value(item: DriftItem, mode: DriftMode | str = DriftMode.ABSOLUTE) -> float:
    if DriftMode(mode) is DriftMode.RELATIVE:
        return item.relative_drift
    return item.absolute_drift


def total_absolute_drift(items: Iterable[DriftItem]) -> float:
    return sum(abs(i.absolute_drift) for i in real_items(items))


def sort_by_magnitude(items: Iterable[DriftItem], mode: DriftMode | str = DriftMode.ABSOLUTE) -> list[DriftItem]:
    # sorted() is stable with reverse=True, so ties keep insertion order
    return sorted(real_items(items), key=lambda i: abs(drift_value(i, mode)), reverse=True)


def aggregate(items: Sequence[DriftItem], mode: DriftMode | str = DriftMode.ABSOLUTE) -> DriftAggregate:
    return DriftAggregate(
        total_absolute_drift=total_absolute_drift(items),
        sorted_by_magnitude=tuple(sort_by_magnitude(items, mode)),
    )


def relative_total_drift(items: Iterable[DriftItem]) -> float:
    """Target-weighted mean of |relative drift|; 0 when nothing is targeted."""
    rows = real_items(items)
    weight = sum(i.target_allocation for i in rows)
    if weight == 0:
        return 0.0
    return sum(abs(i.relative_drift) * i.target_allocation for i in rows) / weight


def total_drift(data: DriftData | None, mode: DriftMode | str = DriftMode.ABSOLUTE) -> float:
    if data is None:
        return 0.0
    if DriftMode(mode) is DriftMode.RELATIVE:
        return relative_total_drift(data.items)
    return data.total_absolute_drift
