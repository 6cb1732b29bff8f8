"""Canonicalize allocation payloads into percentage-point records.

Backends disagree on two things: key style (``currentAllocation`` vs
``current_allocation``) and units (``0.325`` vs ``32.5``). Units are guessed per
field: anything at or below 1 is a fraction and gets scaled by 100. That guess
is wrong for genuine sub-1% allocations (0.8% reads as 80%); the behavior is
kept as-is until product decides otherwise.
"""
from __future__ import annotations

from typing import Any

from .calculator import is_synthetic, total_absolute_drift
from .constants import (
    ALLOCATION_MAX,
    ALLOCATION_MIN,
    FRACTION_CUTOFF,
    SETUP_REQUIRED_MESSAGE,
    UNTARGETED_RELATIVE_DRIFT,
)
from .models import (
    AllocationBucket,
    AllocationCategory,
    DriftData,
    DriftItem,
    DriftResponse,
    SetupRequired,
)
from ..utils import pick, to_float


def to_percent(value: Any) -> float:
    """Scale a fraction to percentage points; values above 1 pass through."""
    v = to_float(value)
    if abs(v) <= FRACTION_CUTOFF:
        return v * 100.0
    return v


def _allocation(value: Any) -> float:
    return min(ALLOCATION_MAX, max(ALLOCATION_MIN, to_percent(value)))


def relative_drift(current: float, target: float) -> float:
    if target == 0:
        return 0.0 if current == 0 else UNTARGETED_RELATIVE_DRIFT
    return (current - target) / target * 100.0


def normalize(raw: dict | DriftItem) -> DriftItem:
    if isinstance(raw, DriftItem):
        # Already canonical; re-reading it would rescale drifts under 1 point.
        return raw
    raw = raw or {}
    current = _allocation(pick(raw, "currentAllocation"))
    target = _allocation(pick(raw, "targetAllocation"))

    supplied_abs = pick(raw, "absoluteDrift")
    supplied_rel = pick(raw, "relativeDrift")
    absolute = to_percent(supplied_abs) if supplied_abs is not None else current - target
    relative = to_percent(supplied_rel) if supplied_rel is not None else relative_drift(current, target)

    return DriftItem(
        name=str(pick(raw, "name", "") or pick(raw, "category", "")),
        current_allocation=current,
        target_allocation=target,
        absolute_drift=absolute,
        relative_drift=relative,
    )


def normalize_drift_data(raw: dict | None) -> DriftData | None:
    if not isinstance(raw, dict):
        return None
    items = tuple(normalize(item) for item in (raw.get("items") or []) if isinstance(item, dict))
    total = total_absolute_drift(items)
    if not total and all(is_synthetic(i) for i in items):
        # Only a rollup row (or nothing): keep what the backend reported.
        total = abs(to_percent(pick(raw, "totalAbsoluteDrift", 0.0)))
    last_updated = pick(raw, "lastUpdated")
    return DriftData(
        portfolio_id=str(pick(raw, "portfolioId", "")),
        portfolio_name=str(pick(raw, "portfolioName", "")),
        last_updated=str(last_updated) if last_updated is not None else None,
        total_absolute_drift=total,
        items=items,
    )


def normalize_current_allocations(raw: Any) -> dict[str, dict[str, float]]:
    if not isinstance(raw, dict):
        return {}
    out: dict[str, dict[str, float]] = {}
    for bucket in (AllocationBucket.ASSET_CLASS, AllocationBucket.SECTOR):
        values = pick(raw, "assetClass" if bucket is AllocationBucket.ASSET_CLASS else "sector")
        if isinstance(values, dict):
            out[bucket.value] = {str(k): _allocation(v) for k, v in values.items()}
    return out


def normalize_drift_response(payload: Any) -> DriftResponse | SetupRequired:
    """Parse ``GET /portfolio/drift/`` into either bucket data or a setup-required signal."""
    if not isinstance(payload, dict):
        return DriftResponse()
    if pick(payload, "setupRequired", False) is True:
        return SetupRequired(
            message=str(payload.get("message") or SETUP_REQUIRED_MESSAGE),
            current_allocations=normalize_current_allocations(pick(payload, "currentAllocations")),
        )
    return DriftResponse(
        overall=normalize_drift_data(payload.get("overall")),
        asset_class=normalize_drift_data(pick(payload, "assetClass")),
        sector=normalize_drift_data(payload.get("sector")),
    )


def normalize_category(raw: dict) -> AllocationCategory:
    target = pick(raw, "targetAllocation")
    current = pick(raw, "currentAllocation")
    return AllocationCategory(
        id=str(raw.get("id", "")),
        name=str(raw.get("name", "")),
        description=raw.get("description"),
        target_allocation=to_float(target) if target is not None else None,
        current_allocation=to_float(current) if current is not None else None,
    )
