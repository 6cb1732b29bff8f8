from __future__ import annotations

import math
from enum import Enum
from typing import Any, Union

import structlog
from pydantic import ConfigDict, ValidationError, field_validator, model_validator

from .constants import DEFAULT_THRESHOLD_PERCENT, NAME_MIN_LENGTH, TEMP_ID_PREFIX, THRESHOLD_MAX, THRESHOLD_MIN
from ..drift.models import DriftMode, ViewModel
from ..errors import AlertRuleValidationError
from ..utils import camel_to_snake, convert_keys, parse_iso, to_float

log = structlog.get_logger()


class AlertStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    DELETED = "deleted"


class AlertFrequency(str, Enum):
    IMMEDIATE = "immediate"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class ConditionType(str, Enum):
    DRIFT = "drift"
    SECTOR_DRIFT = "sector_drift"
    ASSET_CLASS_DRIFT = "asset_class_drift"
    PRICE_MOVEMENT = "price_movement"
    CUSTOM = "custom"


class ActionType(str, Enum):
    NOTIFICATION = "notification"
    EMAIL = "email"
    WEBHOOK = "webhook"


DRIFT_CONDITION_TYPES = frozenset({
    ConditionType.DRIFT,
    ConditionType.SECTOR_DRIFT,
    ConditionType.ASSET_CLASS_DRIFT,
})


def threshold_bounds(condition_type) -> tuple[float, float] | None:
    """Accepted thresholdPercent range for a rule type; None when the type has no threshold."""
    if condition_type in DRIFT_CONDITION_TYPES:
        return THRESHOLD_MIN, THRESHOLD_MAX
    if condition_type == ConditionType.PRICE_MOVEMENT:
        return THRESHOLD_MIN, math.inf
    return None


def coerce_enum(enum_cls, value, default):
    if isinstance(value, enum_cls):
        return value
    if value is None:
        return default
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        return default


def _opt_str(value) -> str | None:
    return None if value is None or value == "" else str(value)


def _iso(value) -> str | None:
    dt = parse_iso(value)
    return dt.isoformat() if dt is not None else None


def _str_tuple(value) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(str(v) for v in value)


# --- condition configs: one model per condition type ---

class ConditionConfig(ViewModel):
    def to_wire(self) -> dict:
        return self.model_dump(mode="json")


class ThresholdConfig(ConditionConfig):
    threshold_percent: float = DEFAULT_THRESHOLD_PERCENT
    drift_type: DriftMode = DriftMode.ABSOLUTE
    portfolio_id: str | None = None

    @field_validator("threshold_percent", mode="before")
    @classmethod
    def check_threshold(cls, v):
        return to_float(v) or DEFAULT_THRESHOLD_PERCENT

    @field_validator("drift_type", mode="before")
    @classmethod
    def check_drift_type(cls, v):
        return coerce_enum(DriftMode, v, DriftMode.ABSOLUTE)

    @field_validator("portfolio_id", mode="before")
    @classmethod
    def check_portfolio(cls, v):
        return _opt_str(v)


class DriftConfig(ThresholdConfig):
    excluded_sectors: tuple[str, ...] = ()
    excluded_asset_classes: tuple[str, ...] = ()

    @field_validator("excluded_sectors", "excluded_asset_classes", mode="before")
    @classmethod
    def check_excluded(cls, v):
        return _str_tuple(v)


class SectorDriftConfig(ThresholdConfig):
    sector_id: str | None = None
    excluded_sectors: tuple[str, ...] = ()

    @field_validator("sector_id", mode="before")
    @classmethod
    def check_sector(cls, v):
        return _opt_str(v)

    @field_validator("excluded_sectors", mode="before")
    @classmethod
    def check_excluded(cls, v):
        return _str_tuple(v)


class AssetClassDriftConfig(ThresholdConfig):
    asset_class_id: str | None = None
    excluded_asset_classes: tuple[str, ...] = ()

    @field_validator("asset_class_id", mode="before")
    @classmethod
    def check_asset_class(cls, v):
        return _opt_str(v)

    @field_validator("excluded_asset_classes", mode="before")
    @classmethod
    def check_excluded(cls, v):
        return _str_tuple(v)


class PriceMovementConfig(ConditionConfig):
    symbol: str | None = None
    threshold_percent: float = DEFAULT_THRESHOLD_PERCENT
    direction: str | None = None

    @field_validator("threshold_percent", mode="before")
    @classmethod
    def check_threshold(cls, v):
        return to_float(v) or DEFAULT_THRESHOLD_PERCENT


class CustomConfig(ConditionConfig):
    model_config = ConfigDict(extra="allow")


AnyConditionConfig = Union[DriftConfig, SectorDriftConfig, AssetClassDriftConfig, PriceMovementConfig, CustomConfig]

CONDITION_CONFIGS: dict[ConditionType, type[ConditionConfig]] = {
    ConditionType.DRIFT: DriftConfig,
    ConditionType.SECTOR_DRIFT: SectorDriftConfig,
    ConditionType.ASSET_CLASS_DRIFT: AssetClassDriftConfig,
    ConditionType.PRICE_MOVEMENT: PriceMovementConfig,
    ConditionType.CUSTOM: CustomConfig,
}


def parse_condition_config(condition_type, raw) -> ConditionConfig:
    condition_type = coerce_enum(ConditionType, condition_type, ConditionType.CUSTOM)
    model = CONDITION_CONFIGS[condition_type]
    if isinstance(raw, model):
        return raw
    if isinstance(raw, ConditionConfig):
        raw = raw.model_dump()
    data = raw if isinstance(raw, dict) else {}
    if model is CustomConfig:
        data = convert_keys(data, camel_to_snake)
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        log.warning("condition_config_invalid", condition_type=condition_type.value, errors=exc.error_count())
        return model()


# --- rules ---

class AlertRule(ViewModel):
    id: str
    name: str = ""
    is_active: bool = True
    status: AlertStatus = AlertStatus.ACTIVE
    frequency: AlertFrequency = AlertFrequency.IMMEDIATE
    condition_type: ConditionType = ConditionType.CUSTOM
    condition_config: AnyConditionConfig = CustomConfig()
    action_type: ActionType = ActionType.NOTIFICATION
    action_config: dict[str, Any] = {}
    created_at: str | None = None
    updated_at: str | None = None
    last_triggered: str | None = None
    last_checked: str | None = None
    portfolio_id: str | None = None
    account_id: str | None = None
    user_id: str | None = None

    @model_validator(mode="before")
    @classmethod
    def check_typed_config(cls, data):
        if isinstance(data, dict):
            ctype = data.get("condition_type", data.get("conditionType"))
            key = "condition_config" if "condition_config" in data else "conditionConfig"
            data = dict(data)
            data[key] = parse_condition_config(ctype, data.get(key))
        return data

    @property
    def is_drift_rule(self) -> bool:
        return self.condition_type in DRIFT_CONDITION_TYPES

    @property
    def is_pending(self) -> bool:
        return self.id.startswith(TEMP_ID_PREFIX)

    @classmethod
    def from_wire(cls, payload: dict) -> "AlertRule":
        is_active = bool(payload.get("is_active", True))
        condition_type = coerce_enum(ConditionType, payload.get("condition_type"), ConditionType.CUSTOM)
        return cls(
            id=str(payload.get("id", "")),
            name=str(payload.get("name") or ""),
            is_active=is_active,
            status=coerce_enum(AlertStatus, payload.get("status"),
                               AlertStatus.ACTIVE if is_active else AlertStatus.PAUSED),
            frequency=coerce_enum(AlertFrequency, payload.get("frequency"), AlertFrequency.IMMEDIATE),
            condition_type=condition_type,
            condition_config=parse_condition_config(condition_type, payload.get("condition_config")),
            action_type=coerce_enum(ActionType, payload.get("action_type"), ActionType.NOTIFICATION),
            action_config=payload.get("action_config") or {},
            created_at=_iso(payload.get("created_at")),
            updated_at=_iso(payload.get("updated_at")),
            last_triggered=_iso(payload.get("last_triggered")),
            last_checked=_iso(payload.get("last_checked")),
            portfolio_id=_opt_str(payload.get("portfolio")),
            account_id=_opt_str(payload.get("account")),
            user_id=_opt_str(payload.get("user")),
        )

    def to_wire(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "is_active": self.is_active,
            "status": self.status.value,
            "frequency": self.frequency.value,
            "condition_type": self.condition_type.value,
            "condition_config": self.condition_config.to_wire(),
            "action_type": self.action_type.value,
            "action_config": dict(self.action_config),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "last_triggered": self.last_triggered,
            "last_checked": self.last_checked,
            "portfolio": self.portfolio_id,
            "account": self.account_id,
            "user": self.user_id,
        }


def _wire_portfolio(value: str):
    return int(value) if value.isdigit() else value


class AlertRuleInput(ViewModel):
    """Create payload, or a partial update when fields are left as None."""
    name: str | None = None
    is_active: bool | None = None
    status: AlertStatus | None = None
    frequency: AlertFrequency | None = None
    condition_type: ConditionType | None = None
    condition_config: dict[str, Any] | None = None
    action_type: ActionType | None = None
    action_config: dict[str, Any] | None = None
    portfolio_id: str | None = None
    account_id: str | None = None

    @field_validator("name")
    @classmethod
    def check_name(cls, v):
        if v is not None and len(v.strip()) < NAME_MIN_LENGTH:
            raise ValueError(f"Alert name must be at least {NAME_MIN_LENGTH} characters")
        return v

    @field_validator("condition_config", mode="before")
    @classmethod
    def check_config(cls, v):
        if isinstance(v, ConditionConfig):
            return v.model_dump()
        return v

    @field_validator("portfolio_id", "account_id", mode="before")
    @classmethod
    def check_ids(cls, v):
        return _opt_str(v)

    @model_validator(mode="after")
    def check_threshold_range(self):
        # Without a condition type only the lower bound is known here; the store
        # checks the full range once the rule's type is resolved.
        self.check_threshold_for(self.condition_type)
        return self

    def check_threshold_for(self, condition_type: ConditionType | None):
        """Raise AlertRuleValidationError when the raw thresholdPercent is unusable for the rule type."""
        config = self.condition_config or {}
        key = next((k for k in ("threshold_percent", "thresholdPercent") if k in config), None)
        if key is None:
            return
        if condition_type is None:
            bounds = (THRESHOLD_MIN, math.inf)
        else:
            bounds = threshold_bounds(coerce_enum(ConditionType, condition_type, ConditionType.CUSTOM))
        if bounds is None:
            return
        low, high = bounds
        value = to_float(config[key], default=math.nan)
        if not low <= value <= high:
            if math.isinf(high):
                raise AlertRuleValidationError(f"thresholdPercent must be at least {low}")
            raise AlertRuleValidationError(f"thresholdPercent must be between {low} and {high}")

    def _merged_config(self, ctype: ConditionType | None, base_config: ConditionConfig | None) -> dict:
        overlay = convert_keys(self.condition_config, camel_to_snake)
        if base_config is None or ctype is None:
            return overlay
        if self.condition_type is not None and self.condition_type != ctype:
            return overlay
        return {**base_config.to_wire(), **overlay}

    def to_wire(self, partial: bool = True, condition_type: ConditionType | None = None,
                base_config: ConditionConfig | None = None) -> dict:
        """
        Build the backend body. For a partial update, `condition_type` and
        `base_config` describe the stored rule; config keys the input leaves
        out keep their stored values instead of falling back to defaults.
        """
        out: dict[str, Any] = {}
        if self.name is not None:
            out["name"] = self.name
        # is_active and status travel together so the two never disagree
        if self.is_active is not None:
            out["is_active"] = self.is_active
            if self.status is None:
                out["status"] = (AlertStatus.ACTIVE if self.is_active else AlertStatus.PAUSED).value
        if self.status is not None:
            out["status"] = self.status.value
            if self.is_active is None:
                out["is_active"] = self.status is AlertStatus.ACTIVE
        if self.frequency is not None:
            out["frequency"] = self.frequency.value
        if self.condition_type is not None:
            out["condition_type"] = self.condition_type.value
        if self.condition_config is not None:
            ctype = self.condition_type or condition_type
            config = self._merged_config(condition_type, base_config) if partial else self.condition_config
            out["condition_config"] = (
                parse_condition_config(ctype, config).to_wire()
                if ctype is not None else convert_keys(config, camel_to_snake)
            )
        if self.action_type is not None:
            out["action_type"] = self.action_type.value
        if self.action_config is not None:
            out["action_config"] = self.action_config
        if self.portfolio_id is not None:
            out["portfolio"] = _wire_portfolio(self.portfolio_id)
        if self.account_id is not None:
            out["account"] = self.account_id
        if not partial:
            out.setdefault("is_active", True)
            out.setdefault("status", (AlertStatus.ACTIVE if out["is_active"] else AlertStatus.PAUSED).value)
            out.setdefault("frequency", AlertFrequency.IMMEDIATE.value)
            out.setdefault("condition_type", ConditionType.DRIFT.value)
            out.setdefault("condition_config", parse_condition_config(out["condition_type"], {}).to_wire())
            out.setdefault("action_type", ActionType.NOTIFICATION.value)
            out.setdefault("action_config", {})
        return out

    def predict_create(self, rule_id: str, created_at: str) -> AlertRule:
        return AlertRule.from_wire({**self.to_wire(partial=False), "id": rule_id, "created_at": created_at})

    def predict_update(self, rule: AlertRule) -> AlertRule:
        body = self.to_wire(partial=True, condition_type=rule.condition_type, base_config=rule.condition_config)
        return AlertRule.from_wire({**rule.to_wire(), **body})


class AlertHistory(ViewModel):
    id: str
    alert_rule_id: str | None = None
    triggered_at: str | None = None
    resolved_at: str | None = None
    was_triggered: bool = False
    context_data: dict[str, Any] = {}
    action_results: Any = None

    @classmethod
    def from_wire(cls, payload: dict) -> "AlertHistory":
        return cls(
            id=str(payload.get("id", "")),
            alert_rule_id=_opt_str(payload.get("alert_rule")),
            triggered_at=_iso(payload.get("triggered_at")),
            resolved_at=_iso(payload.get("resolved_at")),
            was_triggered=bool(payload.get("was_triggered", False)),
            context_data=payload.get("context_data") or {},
            action_results=payload.get("action_results"),
        )
