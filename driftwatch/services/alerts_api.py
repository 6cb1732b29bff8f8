from __future__ import annotations

from .http import BackendClient
from ..alerts.constants import HISTORY_PATH, RULES_PATH, STATS_PATH, history_resolve_path, rule_path
from ..alerts.models import AlertHistory, AlertRule, AlertRuleInput, ConditionConfig, ConditionType


def _rows(payload) -> list[dict]:
    # Paginated list endpoints wrap rows in {"results": [...]}
    if isinstance(payload, dict):
        payload = payload.get("results") or []
    if not isinstance(payload, list):
        return []
    return [row for row in payload if isinstance(row, dict)]


def _rule_or_none(payload) -> AlertRule | None:
    if isinstance(payload, dict) and payload.get("id") is not None:
        return AlertRule.from_wire(payload)
    return None


class AlertsApi:
    def __init__(self, client: BackendClient):
        self.client = client

    async def list_rules(self) -> list[AlertRule]:
        return [AlertRule.from_wire(row) for row in _rows(await self.client.get(RULES_PATH))]

    async def get_rule(self, rule_id: str) -> AlertRule | None:
        return _rule_or_none(await self.client.get(rule_path(rule_id)))

    async def create_rule(self, rule_input: AlertRuleInput) -> AlertRule | None:
        payload = await self.client.post(RULES_PATH, json_body=rule_input.to_wire(partial=False))
        return _rule_or_none(payload)

    async def update_rule(self, rule_id: str, rule_input: AlertRuleInput,
                          condition_type: ConditionType | None = None,
                          base_config: ConditionConfig | None = None) -> AlertRule | None:
        body = rule_input.to_wire(partial=True, condition_type=condition_type, base_config=base_config)
        return _rule_or_none(await self.client.patch(rule_path(rule_id), json_body=body))

    async def delete_rule(self, rule_id: str):
        await self.client.delete(rule_path(rule_id))

    async def get_history(self, rule_id: str | None = None) -> list[AlertHistory]:
        params = {"alert_rule": rule_id} if rule_id is not None else None
        payload = await self.client.get(HISTORY_PATH, params=params)
        return [AlertHistory.from_wire(row) for row in _rows(payload)]

    async def resolve_history(self, history_id: str) -> AlertHistory | None:
        payload = await self.client.post(history_resolve_path(history_id))
        if isinstance(payload, dict) and payload.get("id") is not None:
            return AlertHistory.from_wire(payload)
        return None

    async def get_stats(self) -> dict:
        payload = await self.client.get(STATS_PATH)
        return payload if isinstance(payload, dict) else {}
