from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .models import AlertRule, AssetClassDriftConfig, ConditionType, DriftConfig, SectorDriftConfig, ThresholdConfig
from ..drift.calculator import total_drift
from ..drift.models import AllocationBucket, DriftData, DriftResponse
from ..drift.thresholds import EvaluatedDrift, evaluate, exceeds_threshold
from ..utils import parse_iso

TYPE_LABELS = {
    ConditionType.DRIFT: "Portfolio Drift",
    ConditionType.SECTOR_DRIFT: "Sector Drift",
    ConditionType.ASSET_CLASS_DRIFT: "Asset Class Drift",
}


@dataclass(frozen=True)
class RulePreview:
    """What the rule would see against the drift data on screen right now."""
    bucket: AllocationBucket | None
    total_drift: float
    exceeded: bool
    breaches: tuple[EvaluatedDrift, ...]

    def to_view(self) -> dict:
        return {
            "bucket": self.bucket.value if self.bucket else None,
            "totalDrift": self.total_drift,
            "exceeded": self.exceeded,
            "breaches": [b.to_view() for b in self.breaches],
        }


@dataclass(frozen=True)
class DriftAlertCard:
    rule: AlertRule
    type_label: str
    badge: str
    badge_variant: str
    trigger_text: str
    excluded_sectors: int
    excluded_asset_classes: int
    last_triggered_text: str
    preview: RulePreview

    def to_view(self) -> dict:
        return {
            "rule": self.rule.to_view(),
            "typeLabel": self.type_label,
            "badge": self.badge,
            "badgeVariant": self.badge_variant,
            "triggerText": self.trigger_text,
            "excludedSectors": self.excluded_sectors,
            "excludedAssetClasses": self.excluded_asset_classes,
            "lastTriggeredText": self.last_triggered_text,
            "preview": self.preview.to_view(),
        }


def badge_for(rule: AlertRule) -> tuple[str, str]:
    if not rule.is_active:
        return "Inactive", "secondary"
    if rule.last_triggered:
        return "Active", "destructive"
    return "Active", "outline"


def trigger_text(rule: AlertRule) -> str:
    config = rule.condition_config
    if not isinstance(config, ThresholdConfig):
        return "Custom condition"
    return f"Trigger when {config.drift_type.value} drift exceeds {config.threshold_percent:g}%"


def last_triggered_text(rule: AlertRule) -> str:
    dt = parse_iso(rule.last_triggered)
    if dt is None:
        return "Never triggered"
    return f"Last triggered {dt:%b %d, %Y %H:%M}"


def _excluded(config) -> set[str]:
    names = set(getattr(config, "excluded_sectors", ()))
    names.update(getattr(config, "excluded_asset_classes", ()))
    return {n.lower() for n in names}


def _scope(rule: AlertRule, drift: DriftResponse) -> tuple[AllocationBucket | None, DriftData | None, str | None]:
    config = rule.condition_config
    if isinstance(config, SectorDriftConfig):
        return AllocationBucket.SECTOR, drift.sector, config.sector_id
    if isinstance(config, AssetClassDriftConfig):
        return AllocationBucket.ASSET_CLASS, drift.asset_class, config.asset_class_id
    if isinstance(config, DriftConfig):
        if drift.overall is not None:
            return AllocationBucket.OVERALL, drift.overall, None
        return AllocationBucket.ASSET_CLASS, drift.asset_class, None
    return None, None, None


def rule_preview(rule: AlertRule, drift: DriftResponse | None) -> RulePreview:
    config = rule.condition_config
    if drift is None or not isinstance(config, ThresholdConfig):
        return RulePreview(bucket=None, total_drift=0.0, exceeded=False, breaches=())
    bucket, data, only = _scope(rule, drift)
    if data is None:
        return RulePreview(bucket=bucket, total_drift=0.0, exceeded=False, breaches=())

    excluded = _excluded(config)
    items = [i for i in data.items if i.name.lower() not in excluded]
    if only:
        items = [i for i in items if i.name.lower() == only.lower()]
    rows = evaluate(items, config.threshold_percent, config.drift_type)
    breaches = tuple(r for r in rows if r.exceeded)
    total = total_drift(data, config.drift_type)

    if rule.condition_type is ConditionType.DRIFT:
        exceeded = exceeds_threshold(total, config.threshold_percent)
    else:
        exceeded = bool(breaches)
    return RulePreview(bucket=bucket, total_drift=total, exceeded=exceeded, breaches=breaches)


def build_card(rule: AlertRule, drift: DriftResponse | None = None) -> DriftAlertCard:
    badge, variant = badge_for(rule)
    config = rule.condition_config
    return DriftAlertCard(
        rule=rule,
        type_label=TYPE_LABELS.get(rule.condition_type, "Drift Alert"),
        badge=badge,
        badge_variant=variant,
        trigger_text=trigger_text(rule),
        excluded_sectors=len(getattr(config, "excluded_sectors", ())),
        excluded_asset_classes=len(getattr(config, "excluded_asset_classes", ())),
        last_triggered_text=last_triggered_text(rule),
        preview=rule_preview(rule, drift),
    )


def build_cards(rules: Iterable[AlertRule], drift: DriftResponse | None = None) -> list[DriftAlertCard]:
    return [build_card(r, drift) for r in rules if r.is_drift_rule]
