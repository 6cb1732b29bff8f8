from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Mapping

import structlog

from .balancer import AllocationDraft
from .constants import DEFAULT_THRESHOLD_PERCENT, DRIFT_CACHE_KEY, MISSING_TARGETS_MESSAGE, SETUP_REQUIRED_MESSAGE
from .models import AllocationBucket, AllocationCategory, DriftMode, DriftResponse, SetupRequired
from .thresholds import BucketEvaluation, evaluate_bucket
from ..alerts.cards import DriftAlertCard, build_cards
from ..alerts.models import AlertHistory
from ..cache_layer import CacheLayer
from ..errors import BackendError, TransientFetchError

log = structlog.get_logger()


class CoordinatorState(str, Enum):
    INITIALIZING = "initializing"
    SETUP_REQUIRED = "setup_required"
    ERROR = "error"
    READY = "ready"


class ErrorKind(str, Enum):
    MISSING_TARGETS = "missing_targets"
    GENERIC = "generic"


class RecoveryAction(str, Enum):
    OPEN_ALLOCATION_EDITOR = "open_allocation_editor"
    RETRY = "retry"


@dataclass(frozen=True)
class DriftSnapshot:
    state: CoordinatorState = CoordinatorState.INITIALIZING
    message: str | None = None
    error_kind: ErrorKind | None = None
    recovery_action: RecoveryAction | None = None
    drift: DriftResponse | None = None
    current_allocations: dict = field(default_factory=dict)
    asset_classes: tuple[AllocationCategory, ...] = ()
    sectors: tuple[AllocationCategory, ...] = ()

    def to_view(self) -> dict:
        return {
            "state": self.state.value,
            "message": self.message,
            "errorKind": self.error_kind.value if self.error_kind else None,
            "recoveryAction": self.recovery_action.value if self.recovery_action else None,
            "drift": self.drift.to_view() if self.drift else None,
            "currentAllocations": {
                "assetClass" if k == AllocationBucket.ASSET_CLASS.value else k: v
                for k, v in self.current_allocations.items()
            },
            "assetClasses": [c.to_view() for c in self.asset_classes],
            "sectors": [c.to_view() for c in self.sectors],
        }


def is_missing_targets(message: str | None, status_code: int | None = None) -> bool:
    if status_code == 400:
        return True
    text = message or ""
    return "target allocations defined" in text or ("400" in text and "Bad Request" in text)


def _categories_key(bucket: AllocationBucket) -> str:
    return f"categories:{bucket.value}"


class DriftAlertCoordinator:
    """
    Owns the drift screen: drift fetch, category prefetch, setup/error routing,
    and the drift-alert cards built from the rule store.
    """
    def __init__(self, portfolio_api, alert_store=None, alerts_api=None, ttl_seconds: float = 300.0,
                 clock: Callable[[], float] = time.monotonic, prefetch: bool = True,
                 threshold_percent: float = DEFAULT_THRESHOLD_PERCENT, mode: DriftMode | str = DriftMode.ABSOLUTE):
        self.portfolio_api = portfolio_api
        self.alert_store = alert_store
        self.alerts_api = alerts_api
        self.cache = CacheLayer(ttl_seconds=ttl_seconds, clock=clock)
        self.prefetch = prefetch
        self.threshold_percent = threshold_percent
        self.mode = DriftMode(mode)
        self._snapshot = DriftSnapshot()

    @property
    def snapshot(self) -> DriftSnapshot:
        return self._snapshot

    @property
    def state(self) -> CoordinatorState:
        return self._snapshot.state

    def categories(self, bucket: AllocationBucket | str) -> tuple[AllocationCategory, ...]:
        return self.cache.peek(_categories_key(AllocationBucket(bucket)), ())

    def _transition(self, snapshot: DriftSnapshot):
        previous = self._snapshot.state
        self._snapshot = snapshot
        if previous is not snapshot.state:
            log.info("drift_state_changed", from_state=previous.value, to_state=snapshot.state.value,
                     message=snapshot.message)

    async def _fetch_categories(self, bucket: AllocationBucket, force: bool):
        async def load():
            return tuple(await self.portfolio_api.get_categories(bucket))
        return await self.cache.fetch(_categories_key(bucket), load, force=force)

    async def refresh(self, force: bool = False) -> DriftSnapshot:
        self._transition(replace(self._snapshot, state=CoordinatorState.INITIALIZING, message=None,
                                 error_kind=None, recovery_action=None))
        jobs = [self.cache.fetch(DRIFT_CACHE_KEY, self.portfolio_api.get_drift, force=force)]
        if self.prefetch:
            jobs.append(self._fetch_categories(AllocationBucket.ASSET_CLASS, force))
            jobs.append(self._fetch_categories(AllocationBucket.SECTOR, force))
        results = await asyncio.gather(*jobs, return_exceptions=True)

        for bucket, result in zip((AllocationBucket.ASSET_CLASS, AllocationBucket.SECTOR), results[1:]):
            if isinstance(result, BackendError):
                log.warning("category_prefetch_failed", bucket=bucket.value, error=result.message)
            elif isinstance(result, BaseException):
                raise result

        base = replace(
            self._snapshot,
            asset_classes=self.categories(AllocationBucket.ASSET_CLASS),
            sectors=self.categories(AllocationBucket.SECTOR),
        )
        result = results[0]
        if isinstance(result, BackendError):
            snapshot = self._error_snapshot(base, result)
        elif isinstance(result, BaseException):
            raise result
        elif isinstance(result, SetupRequired):
            snapshot = replace(base, state=CoordinatorState.SETUP_REQUIRED, message=result.message,
                               drift=None, current_allocations=dict(result.current_allocations))
        elif result.has_items():
            snapshot = replace(base, state=CoordinatorState.READY, drift=result, current_allocations={})
        else:
            snapshot = replace(base, state=CoordinatorState.SETUP_REQUIRED, message=SETUP_REQUIRED_MESSAGE,
                               drift=None, current_allocations={})
        self._transition(snapshot)
        return snapshot

    def _error_snapshot(self, base: DriftSnapshot, exc: BackendError) -> DriftSnapshot:
        # Whatever drift was cached before the failure stays on screen.
        cached = self.cache.peek(DRIFT_CACHE_KEY)
        drift = cached if isinstance(cached, DriftResponse) else None
        if is_missing_targets(exc.message, exc.status_code):
            return replace(base, state=CoordinatorState.ERROR, message=MISSING_TARGETS_MESSAGE, drift=drift,
                           error_kind=ErrorKind.MISSING_TARGETS,
                           recovery_action=RecoveryAction.OPEN_ALLOCATION_EDITOR)
        return replace(base, state=CoordinatorState.ERROR, message=exc.message, drift=drift,
                       error_kind=ErrorKind.GENERIC, recovery_action=RecoveryAction.RETRY)

    def bucket_view(self, bucket: AllocationBucket | str, threshold_percent: float | None = None,
                    mode: DriftMode | str | None = None) -> BucketEvaluation:
        drift = self._snapshot.drift
        data = drift.bucket(bucket) if drift is not None else None
        return evaluate_bucket(
            data,
            self.threshold_percent if threshold_percent is None else threshold_percent,
            self.mode if mode is None else mode,
        )

    async def drift_alert_cards(self, force_refresh: bool = False) -> list[DriftAlertCard]:
        if self.alert_store is None:
            return []
        try:
            rules = await self.alert_store.get_rules(force_refresh=force_refresh)
        except TransientFetchError as exc:
            if not self.alert_store.rules:
                raise
            log.warning("alert_rules_fetch_failed", error=exc.message, cached=len(self.alert_store.rules))
            rules = self.alert_store.rules
        return build_cards(rules, self._snapshot.drift)

    async def alert_history(self, rule_id: str) -> list[AlertHistory]:
        if self.alerts_api is None:
            return []
        try:
            return await self.alerts_api.get_history(rule_id)
        except BackendError as exc:
            raise TransientFetchError(exc.message, status_code=exc.status_code) from exc

    async def save_target_allocations(self, bucket: AllocationBucket | str,
                                      allocations: Mapping[str, float]) -> list[AllocationCategory]:
        bucket = AllocationBucket(bucket)
        payload = AllocationDraft(bucket, allocations).to_payload()
        categories = await self.portfolio_api.save_target_allocations(bucket, payload)
        if categories:
            self.cache.set(_categories_key(bucket), tuple(categories))
        await self.refresh(force=True)
        return categories
