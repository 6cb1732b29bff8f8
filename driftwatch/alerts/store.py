from __future__ import annotations

import asyncio
import time
import uuid
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Callable

import structlog

from .constants import RULES_CACHE_KEY, TEMP_ID_PREFIX
from .models import AlertRule, AlertRuleInput, ConditionType
from ..cache_layer import CacheLayer, CacheStatus
from ..errors import BackendError, OptimisticMutationFailure, TransientFetchError
from ..utils import now_utc_iso

log = structlog.get_logger()

COMMAND_LOG_SIZE = 100


@dataclass
class MutationCommand:
    """One optimistic write: what was predicted locally and what to put back."""
    intent: str                     # create | update | delete
    target_id: str
    predicted: AlertRule | None
    previous: AlertRule | None = None
    index: int | None = None
    status: str = "pending"         # pending | confirmed | compensated


def _temp_id() -> str:
    return f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}"


class AlertRuleStore:
    """
    Local mirror of the user's alert rules.
    - Reads go through a TTL cache; concurrent reads share one request
    - Writes are applied locally first, then confirmed or rolled back
    - Writes to the same rule id run one at a time
    """
    def __init__(self, client, ttl_seconds: float = 300.0, clock: Callable[[], float] = time.monotonic,
                 id_factory: Callable[[], str] = _temp_id):
        self.client = client
        self.cache = CacheLayer(ttl_seconds=ttl_seconds, clock=clock)
        self._id_factory = id_factory
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self.commands: deque[MutationCommand] = deque(maxlen=COMMAND_LOG_SIZE)

    @property
    def status(self) -> CacheStatus:
        return self.cache.status(RULES_CACHE_KEY)

    @property
    def error(self) -> str | None:
        return self.cache.last_error(RULES_CACHE_KEY)

    @property
    def rules(self) -> tuple[AlertRule, ...]:
        return self.cache.peek(RULES_CACHE_KEY, ())

    @property
    def pending(self) -> list[MutationCommand]:
        return [c for c in self.commands if c.status == "pending"]

    def drift_rules(self) -> tuple[AlertRule, ...]:
        return tuple(r for r in self.rules if r.is_drift_rule)

    def get_rule(self, rule_id: str) -> AlertRule | None:
        for rule in self.rules:
            if rule.id == str(rule_id):
                return rule
        return None

    async def get_rules(self, force_refresh: bool = False) -> tuple[AlertRule, ...]:
        try:
            return await self.cache.fetch(RULES_CACHE_KEY, self._load, force=force_refresh)
        except BackendError as exc:
            raise TransientFetchError(exc.message, status_code=exc.status_code) from exc

    async def _load(self) -> tuple[AlertRule, ...]:
        rules = await self.client.list_rules()
        log.info("alert_rules_loaded", count=len(rules))
        return tuple(rules)

    @asynccontextmanager
    async def _serialized(self, rule_id: str):
        # The lock is dropped once its last holder or waiter leaves
        lock = self._locks.setdefault(rule_id, asyncio.Lock())
        self._lock_users[rule_id] = self._lock_users.get(rule_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[rule_id] -= 1
            if not self._lock_users[rule_id]:
                del self._lock_users[rule_id]
                del self._locks[rule_id]

    async def create_or_update(self, rule_input: AlertRuleInput, rule_id: str | None = None) -> AlertRule:
        if rule_id is None:
            rule_input.check_threshold_for(rule_input.condition_type or ConditionType.DRIFT)
            return await self._create(rule_input)
        rule_id = str(rule_id)
        if rule_id.startswith(TEMP_ID_PREFIX):
            raise OptimisticMutationFailure("Alert rule is still being created", "update", rule_id)
        async with self._serialized(rule_id):
            return await self._update(rule_id, rule_input)

    async def set_active(self, rule_id: str, active: bool) -> AlertRule:
        return await self.create_or_update(AlertRuleInput(is_active=active), rule_id)

    async def _create(self, rule_input: AlertRuleInput) -> AlertRule:
        temp_id = self._id_factory()
        predicted = rule_input.predict_create(temp_id, now_utc_iso())
        command = self._begin("create", temp_id, predicted)
        self.cache.replace(RULES_CACHE_KEY, self.rules + (predicted,))
        try:
            saved = await self.client.create_rule(rule_input)
        except BackendError as exc:
            await self._compensate(command)
            raise OptimisticMutationFailure(f"Failed to create alert rule: {exc.message}", "create") from exc
        return await self._confirm(command, saved)

    async def _update(self, rule_id: str, rule_input: AlertRuleInput) -> AlertRule:
        previous = self.get_rule(rule_id)
        ctype = previous.condition_type if previous is not None else None
        base_config = previous.condition_config if previous is not None else None
        rule_input.check_threshold_for(rule_input.condition_type or ctype)
        predicted = rule_input.predict_update(previous) if previous is not None else None
        command = self._begin("update", rule_id, predicted, previous)
        if predicted is not None:
            self.cache.replace(RULES_CACHE_KEY, tuple(predicted if r.id == rule_id else r for r in self.rules))
        try:
            saved = await self.client.update_rule(rule_id, rule_input, condition_type=ctype,
                                                  base_config=base_config)
        except BackendError as exc:
            await self._compensate(command)
            raise OptimisticMutationFailure(
                f"Failed to update alert rule: {exc.message}", "update", rule_id
            ) from exc
        return await self._confirm(command, saved)

    async def delete(self, rule_id: str):
        rule_id = str(rule_id)
        async with self._serialized(rule_id):
            rules = self.rules
            index = next((i for i, r in enumerate(rules) if r.id == rule_id), None)
            previous = rules[index] if index is not None else None
            command = self._begin("delete", rule_id, None, previous, index)
            self.cache.replace(RULES_CACHE_KEY, tuple(r for r in rules if r.id != rule_id))
            try:
                await self.client.delete_rule(rule_id)
            except BackendError as exc:
                await self._compensate(command)
                raise OptimisticMutationFailure(
                    f"Failed to delete alert rule: {exc.message}", "delete", rule_id
                ) from exc
            command.status = "confirmed"
            log.info("alert_rule_deleted", rule_id=rule_id)

    def _begin(self, intent: str, target_id: str, predicted: AlertRule | None,
               previous: AlertRule | None = None, index: int | None = None) -> MutationCommand:
        command = MutationCommand(intent=intent, target_id=target_id, predicted=predicted,
                                  previous=previous, index=index)
        self.commands.append(command)
        return command

    async def _confirm(self, command: MutationCommand, saved: AlertRule | None) -> AlertRule:
        matched = False
        if saved is not None and saved.id:
            rules = list(self.rules)
            for i, rule in enumerate(rules):
                if rule.id == command.target_id:
                    rules[i] = saved
                    matched = True
            if matched:
                self.cache.replace(RULES_CACHE_KEY, tuple(rules))
        command.status = "confirmed"
        log.info("alert_rule_saved", intent=command.intent, rule_id=saved.id if saved else command.target_id)
        if not matched:
            await self._resync()
        if saved is not None and saved.id:
            return saved
        return self.get_rule(command.target_id) or command.predicted

    async def _compensate(self, command: MutationCommand):
        rules = [r for r in self.rules if r.id != command.target_id]
        if command.previous is not None:
            if command.intent == "delete" and command.index is not None:
                rules.insert(min(command.index, len(rules)), command.previous)
            elif command.intent == "update":
                rules = [command.previous if r.id == command.target_id else r for r in self.rules]
        self.cache.replace(RULES_CACHE_KEY, tuple(rules))
        command.status = "compensated"
        log.warning("optimistic_mutation_compensated", intent=command.intent, rule_id=command.target_id)
        await self._resync()

    async def _resync(self):
        try:
            await self.get_rules(force_refresh=True)
        except TransientFetchError as exc:
            log.warning("alert_rules_resync_failed", error=exc.message)
