from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .calculator import drift_value, sort_by_magnitude, total_drift
from .constants import ELEVATED_FRACTION, SAFE_FRACTION, WARNING_FRACTION
from .models import DriftData, DriftItem, DriftMode, Severity


def classify(drift: float, threshold_percent: float) -> Severity:
    magnitude = abs(drift)
    if magnitude < threshold_percent * SAFE_FRACTION:
        return Severity.SAFE
    if magnitude < threshold_percent * WARNING_FRACTION:
        return Severity.WARNING
    if magnitude < threshold_percent * ELEVATED_FRACTION:
        return Severity.ELEVATED
    return Severity.CRITICAL


def exceeds_threshold(drift: float, threshold_percent: float) -> bool:
    # Same boundary as the critical tier: a drift equal to the threshold fires.
    return abs(drift) >= threshold_percent


@dataclass(frozen=True)
class EvaluatedDrift:
    item: DriftItem
    mode: DriftMode
    value: float
    severity: Severity
    exceeded: bool

    def to_view(self) -> dict:
        view = self.item.to_view()
        view.update({
            "mode": self.mode.value,
            "drift": self.value,
            "severity": self.severity.value,
            "exceededThreshold": self.exceeded,
        })
        return view


def evaluate_item(item: DriftItem, threshold_percent: float, mode: DriftMode | str) -> EvaluatedDrift:
    mode = DriftMode(mode)
    value = drift_value(item, mode)
    return EvaluatedDrift(
        item=item,
        mode=mode,
        value=value,
        severity=classify(value, threshold_percent),
        exceeded=exceeds_threshold(value, threshold_percent),
    )


def evaluate(items: Iterable[DriftItem], threshold_percent: float, mode: DriftMode | str) -> list[EvaluatedDrift]:
    """Rows sorted by magnitude under ``mode``, each tagged with its tier."""
    return [evaluate_item(i, threshold_percent, mode) for i in sort_by_magnitude(items, mode)]


@dataclass(frozen=True)
class BucketEvaluation:
    rows: tuple[EvaluatedDrift, ...]
    total_drift: float
    total_severity: Severity
    exceeded_count: int
    threshold_percent: float
    mode: DriftMode

    @property
    def exceeded(self) -> tuple[EvaluatedDrift, ...]:
        return tuple(r for r in self.rows if r.exceeded)


def evaluate_bucket(data: DriftData | None, threshold_percent: float, mode: DriftMode | str) -> BucketEvaluation:
    mode = DriftMode(mode)
    rows = tuple(evaluate(data.items, threshold_percent, mode)) if data else ()
    total = total_drift(data, mode)
    return BucketEvaluation(
        rows=rows,
        total_drift=total,
        total_severity=classify(total, threshold_percent),
        exceeded_count=sum(1 for r in rows if r.exceeded),
        threshold_percent=threshold_percent,
        mode=mode,
    )
