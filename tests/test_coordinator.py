import json
import unittest

from driftwatch.alerts.store import AlertRuleStore
from driftwatch.drift.constants import MISSING_TARGETS_MESSAGE, SETUP_REQUIRED_MESSAGE
from driftwatch.drift.coordinator import (
    CoordinatorState,
    DriftAlertCoordinator,
    ErrorKind,
    RecoveryAction,
    is_missing_targets,
)
from driftwatch.drift.models import AllocationBucket, DriftMode
from driftwatch.errors import AllocationValidationError
from driftwatch.services.alerts_api import AlertsApi
from driftwatch.services.portfolio_api import PortfolioApi

from backend_fakes import SECTORS, FakeBackend

DRIFT = "/portfolio/drift/"


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class CoordinatorTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.backend = FakeBackend()
        self.client = self.backend.client()
        self.clock = FakeClock()
        alerts_api = AlertsApi(self.client)
        self.coordinator = DriftAlertCoordinator(
            PortfolioApi(self.client),
            alert_store=AlertRuleStore(alerts_api, clock=self.clock),
            alerts_api=alerts_api,
            ttl_seconds=300,
            clock=self.clock,
        )

    async def asyncTearDown(self):
        await self.client.aclose()

    async def test_starts_initializing(self):
        self.assertEqual(self.coordinator.state, CoordinatorState.INITIALIZING)

    async def test_sector_scenario(self):
        snapshot = await self.coordinator.refresh()
        self.assertEqual(snapshot.state, CoordinatorState.READY)
        view = self.coordinator.bucket_view("sector", 5, DriftMode.ABSOLUTE)
        tech, health = view.rows
        self.assertEqual((tech.item.name, tech.exceeded), ("Technology", True))
        self.assertAlmostEqual(tech.value, 7.5)
        self.assertEqual((health.item.name, health.exceeded), ("Healthcare", False))
        self.assertAlmostEqual(health.value, -2.2)
        self.assertGreaterEqual(view.total_drift + 1e-9, 9.7)

    async def test_categories_prefetched(self):
        snapshot = await self.coordinator.refresh()
        self.assertEqual([c.name for c in snapshot.sectors], ["Technology", "Healthcare"])
        self.assertEqual([c.name for c in snapshot.asset_classes], ["Equity", "Bonds"])

    async def test_prefetch_failure_does_not_block(self):
        self.backend.routes[("GET", "/portfolio/sectors/")] = (500, {"detail": "boom"})
        snapshot = await self.coordinator.refresh()
        self.assertEqual(snapshot.state, CoordinatorState.READY)
        self.assertEqual(snapshot.sectors, ())

    async def test_drift_cached_until_forced(self):
        await self.coordinator.refresh()
        await self.coordinator.refresh()
        self.assertEqual(self.backend.hits("GET", DRIFT), 1)
        await self.coordinator.refresh(force=True)
        self.assertEqual(self.backend.hits("GET", DRIFT), 2)
        self.clock.now += 301
        await self.coordinator.refresh()
        self.assertEqual(self.backend.hits("GET", DRIFT), 3)

    async def test_setup_required_keeps_current_allocations(self):
        self.backend.routes[("GET", DRIFT)] = (200, {
            "setup_required": True,
            "message": "Define targets",
            "current_allocations": {"sector": {"Technology": 0.325}},
        })
        snapshot = await self.coordinator.refresh()
        self.assertEqual(snapshot.state, CoordinatorState.SETUP_REQUIRED)
        self.assertEqual(snapshot.message, "Define targets")
        self.assertAlmostEqual(snapshot.current_allocations["sector"]["Technology"], 32.5)
        self.assertIsNone(snapshot.drift)

    async def test_empty_payload_is_setup_required(self):
        self.backend.routes[("GET", DRIFT)] = (200, {"sector": {"items": []}})
        snapshot = await self.coordinator.refresh()
        self.assertEqual(snapshot.state, CoordinatorState.SETUP_REQUIRED)
        self.assertEqual(snapshot.message, SETUP_REQUIRED_MESSAGE)

    async def test_missing_targets_error(self):
        self.backend.routes[("GET", DRIFT)] = (400, {"detail": "Bad Request"})
        snapshot = await self.coordinator.refresh()
        self.assertEqual(snapshot.state, CoordinatorState.ERROR)
        self.assertEqual(snapshot.error_kind, ErrorKind.MISSING_TARGETS)
        self.assertEqual(snapshot.recovery_action, RecoveryAction.OPEN_ALLOCATION_EDITOR)
        self.assertEqual(snapshot.message, MISSING_TARGETS_MESSAGE)

    async def test_generic_error_keeps_stale_drift(self):
        await self.coordinator.refresh()
        self.backend.routes[("GET", DRIFT)] = (503, {"error": "Service unavailable"})
        snapshot = await self.coordinator.refresh(force=True)
        self.assertEqual(snapshot.state, CoordinatorState.ERROR)
        self.assertEqual(snapshot.error_kind, ErrorKind.GENERIC)
        self.assertEqual(snapshot.recovery_action, RecoveryAction.RETRY)
        self.assertEqual(snapshot.message, "Service unavailable")
        self.assertIsNotNone(snapshot.drift)

    async def test_recovers_after_error(self):
        self.backend.routes[("GET", DRIFT)] = (503, {"error": "Service unavailable"})
        await self.coordinator.refresh()
        self.backend.routes[("GET", DRIFT)] = (200, {"sector": {"items": [
            {"name": "Technology", "current_allocation": 30, "target_allocation": 25}]}})
        snapshot = await self.coordinator.refresh()
        self.assertEqual(snapshot.state, CoordinatorState.READY)

    async def test_save_rejects_bad_total_without_request(self):
        with self.assertRaises(AllocationValidationError):
            await self.coordinator.save_target_allocations("sector", {"1": 50, "2": 30})
        self.assertEqual(self.backend.hits("POST", "/portfolio/sector-target-allocations/"), 0)

    async def test_save_posts_and_forces_refresh(self):
        self.backend.routes[("POST", "/portfolio/sector-target-allocations/")] = (200, SECTORS)
        await self.coordinator.refresh()
        categories = await self.coordinator.save_target_allocations(AllocationBucket.SECTOR, {"1": 60, "2": 40})
        self.assertEqual(len(categories), 2)
        body = json.loads(self.backend.calls[
            [r.method for r in self.backend.calls].index("POST")].content)
        self.assertEqual(body, [{"asset_id": "1", "target_percentage": 60.0},
                                {"asset_id": "2", "target_percentage": 40.0}])
        self.assertEqual(self.backend.hits("GET", DRIFT), 2)

    async def test_drift_alert_cards(self):
        await self.coordinator.refresh()
        cards = {c.rule.id: c for c in await self.coordinator.drift_alert_cards()}
        self.assertEqual(set(cards), {"7", "8"})

        sector = cards["7"]
        self.assertEqual(sector.type_label, "Sector Drift")
        self.assertEqual((sector.badge, sector.badge_variant), ("Active", "outline"))
        self.assertEqual(sector.trigger_text, "Trigger when absolute drift exceeds 5%")
        self.assertEqual(sector.last_triggered_text, "Never triggered")
        self.assertTrue(sector.preview.exceeded)
        self.assertEqual([b.item.name for b in sector.preview.breaches], ["Technology"])

        portfolio = cards["8"]
        self.assertEqual(portfolio.type_label, "Portfolio Drift")
        self.assertEqual(portfolio.badge, "Inactive")
        self.assertEqual(portfolio.excluded_sectors, 1)
        self.assertEqual(portfolio.last_triggered_text, "Last triggered Sep 20, 2026 08:30")
        self.assertEqual(portfolio.preview.bucket, AllocationBucket.ASSET_CLASS)
        self.assertFalse(portfolio.preview.exceeded)

    async def test_alert_history(self):
        self.backend.routes[("GET", "/alerts/history/")] = (200, {"results": [
            {"id": 1, "alert_rule": 7, "triggered_at": "2026-09-20T08:30:00Z", "was_triggered": True}]})
        history = await self.coordinator.alert_history("7")
        self.assertEqual(history[0].alert_rule_id, "7")


class MissingTargetsDetectionTests(unittest.TestCase):
    def test_detection(self):
        self.assertTrue(is_missing_targets("There are no target allocations defined"))
        self.assertTrue(is_missing_targets("HTTP error 400: Bad Request"))
        self.assertTrue(is_missing_targets("whatever", 400))
        self.assertFalse(is_missing_targets("HTTP error 500: Bad Gateway", 500))
        self.assertFalse(is_missing_targets(None))


if __name__ == "__main__":
    unittest.main()
