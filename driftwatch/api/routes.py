from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

from .schemas import BalanceRequest, BalanceResponse, HealthResponse, TargetAllocationsRequest, ToggleRequest
from ..alerts.models import AlertRuleInput
from ..drift.balancer import AllocationDraft
from ..drift.coordinator import CoordinatorState, DriftAlertCoordinator
from ..drift.models import AllocationBucket, DriftMode
from ..errors import (
    AlertRuleValidationError,
    AllocationValidationError,
    BackendError,
    OptimisticMutationFailure,
    TransientFetchError,
)

router = APIRouter()


def _coordinator(request: Request) -> DriftAlertCoordinator:
    return request.app.state.coordinator


def _store(request: Request):
    store = _coordinator(request).alert_store
    if store is None:
        raise HTTPException(503, 'alert rules are not configured')
    return store


async def _known_rule(store, rule_id: str):
    if store.get_rule(rule_id) is None:
        try:
            await store.get_rules()
        except TransientFetchError as e:
            raise HTTPException(502, e.message)
    if store.get_rule(rule_id) is None:
        raise HTTPException(404, 'alert rule not found')


@router.get('/health', response_model=HealthResponse, tags=["Health"])
def health(request: Request):
    coordinator = _coordinator(request)
    store = coordinator.alert_store
    return {
        'ok': True,
        'state': coordinator.state.value,
        'rules': store.status.value if store is not None else 'disabled',
    }


@router.get(
    '/drift',
    summary="Drift snapshot",
    description="Current drift state; loads it on first use.",
    tags=["Drift"],
)
async def get_drift(request: Request):
    coordinator = _coordinator(request)
    if coordinator.state is CoordinatorState.INITIALIZING:
        await coordinator.refresh()
    return coordinator.snapshot.to_view()


@router.post('/drift/refresh', summary="Force a drift reload", tags=["Drift"])
async def refresh_drift(request: Request):
    snapshot = await _coordinator(request).refresh(force=True)
    return snapshot.to_view()


@router.get(
    '/drift/{bucket}',
    summary="Bucket view",
    description="Rows sorted by drift magnitude with severity and threshold flags.",
    tags=["Drift"],
)
def get_bucket(request: Request, bucket: AllocationBucket, threshold: float | None = None,
               mode: DriftMode | None = None):
    if threshold is not None and threshold <= 0:
        raise HTTPException(400, 'threshold must be > 0')
    view = _coordinator(request).bucket_view(bucket, threshold, mode)
    return {
        'bucket': bucket.value,
        'mode': view.mode.value,
        'thresholdPercent': view.threshold_percent,
        'totalDrift': view.total_drift,
        'totalSeverity': view.total_severity.value,
        'exceededCount': view.exceeded_count,
        'rows': [r.to_view() for r in view.rows],
    }


@router.post('/allocations/balance', response_model=BalanceResponse, tags=["Allocations"])
def balance_allocations(req: BalanceRequest):
    draft = AllocationDraft(AllocationBucket.ASSET_CLASS, req.allocations)
    draft.auto_balance()
    return {'allocations': draft.as_dict(), 'total': round(draft.total, 2), 'balanced': draft.is_balanced}


@router.post('/allocations/{bucket}', summary="Save target allocations", tags=["Allocations"])
async def save_allocations(request: Request, bucket: AllocationBucket, req: TargetAllocationsRequest):
    if bucket is AllocationBucket.OVERALL:
        raise HTTPException(400, 'bucket must be asset_class|sector')
    try:
        categories = await _coordinator(request).save_target_allocations(bucket, req.allocations)
    except AllocationValidationError as e:
        raise HTTPException(422, {'message': e.message, 'total': e.total})
    except BackendError as e:
        raise HTTPException(502, e.message)
    return {
        'categories': [c.to_view() for c in categories],
        'drift': _coordinator(request).snapshot.to_view(),
    }


@router.get('/alerts/rules', tags=["Alerts"])
async def list_rules(request: Request, refresh: bool = False):
    try:
        rules = await _store(request).get_rules(force_refresh=refresh)
    except TransientFetchError as e:
        raise HTTPException(502, e.message)
    return [r.to_view() for r in rules]


@router.post('/alerts/rules', status_code=201, tags=["Alerts"])
async def create_rule(request: Request, rule: AlertRuleInput):
    try:
        saved = await _store(request).create_or_update(rule)
    except AlertRuleValidationError as e:
        raise HTTPException(422, e.message)
    except OptimisticMutationFailure as e:
        raise HTTPException(502, e.message)
    return saved.to_view()


@router.patch('/alerts/rules/{rule_id}', tags=["Alerts"])
async def update_rule(request: Request, rule_id: str, rule: AlertRuleInput):
    store = _store(request)
    await _known_rule(store, rule_id)
    try:
        saved = await store.create_or_update(rule, rule_id)
    except AlertRuleValidationError as e:
        raise HTTPException(422, e.message)
    except OptimisticMutationFailure as e:
        raise HTTPException(502, e.message)
    return saved.to_view()


@router.post('/alerts/rules/{rule_id}/toggle', tags=["Alerts"])
async def toggle_rule(request: Request, rule_id: str, req: ToggleRequest):
    store = _store(request)
    await _known_rule(store, rule_id)
    try:
        saved = await store.set_active(rule_id, req.active)
    except OptimisticMutationFailure as e:
        raise HTTPException(502, e.message)
    return saved.to_view()


@router.delete('/alerts/rules/{rule_id}', tags=["Alerts"])
async def delete_rule(request: Request, rule_id: str):
    store = _store(request)
    await _known_rule(store, rule_id)
    try:
        await store.delete(rule_id)
    except OptimisticMutationFailure as e:
        raise HTTPException(502, e.message)
    return {'ok': True, 'deleted': rule_id}


@router.get('/alerts/rules/{rule_id}/history', tags=["Alerts"])
async def rule_history(request: Request, rule_id: str):
    try:
        history = await _coordinator(request).alert_history(rule_id)
    except TransientFetchError as e:
        raise HTTPException(502, e.message)
    return [h.to_view() for h in history]


@router.get(
    '/alerts/cards',
    summary="Drift alert cards",
    description="Drift-type rules with badges and a preview against the current drift data.",
    tags=["Alerts"],
)
async def alert_cards(request: Request, refresh: bool = False):
    try:
        cards = await _coordinator(request).drift_alert_cards(force_refresh=refresh)
    except TransientFetchError as e:
        raise HTTPException(502, e.message)
    return [c.to_view() for c in cards]
