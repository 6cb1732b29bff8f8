from contextlib import asynccontextmanager

from fastapi import FastAPI

from .alerts.store import AlertRuleStore
from .api.routes import router as api_router
from .config import settings
from .drift.coordinator import DriftAlertCoordinator
from .logging import setup_logging
from .services.alerts_api import AlertsApi
from .services.http import BackendClient
from .services.portfolio_api import PortfolioApi


def build_coordinator(client: BackendClient) -> DriftAlertCoordinator:
    alerts_api = AlertsApi(client)
    store = AlertRuleStore(alerts_api, ttl_seconds=settings.alert_cache_ttl_seconds)
    return DriftAlertCoordinator(
        PortfolioApi(client),
        alert_store=store,
        alerts_api=alerts_api,
        ttl_seconds=settings.drift_cache_ttl_seconds,
        prefetch=bool(settings.prefetch_categories),
        threshold_percent=settings.drift_threshold_percent,
        mode=settings.drift_mode,
    )


def create_app(coordinator: DriftAlertCoordinator | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if coordinator is not None:
            app.state.coordinator = coordinator
            yield
            return
        async with BackendClient(settings.api_base_url, settings.api_token, settings.http_timeout_seconds) as client:
            app.state.coordinator = build_coordinator(client)
            yield

    app = FastAPI(title="driftwatch", lifespan=lifespan)
    app.include_router(api_router)
    return app


setup_logging()
app = create_app()
