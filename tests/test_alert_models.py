import unittest

from pydantic import ValidationError

from driftwatch.alerts.models import (
    ActionType,
    AlertFrequency,
    AlertHistory,
    AlertRule,
    AlertRuleInput,
    AlertStatus,
    AssetClassDriftConfig,
    ConditionType,
    CustomConfig,
    DriftConfig,
    PriceMovementConfig,
    SectorDriftConfig,
    parse_condition_config,
)
from driftwatch.drift.models import DriftMode
from driftwatch.errors import AlertRuleValidationError


class ConditionConfigTests(unittest.TestCase):
    def test_variant_follows_condition_type(self):
        self.assertIsInstance(parse_condition_config("drift", {}), DriftConfig)
        self.assertIsInstance(parse_condition_config("sector_drift", {}), SectorDriftConfig)
        self.assertIsInstance(parse_condition_config("ASSET_CLASS_DRIFT", {}), AssetClassDriftConfig)
        self.assertIsInstance(parse_condition_config("price_movement", {}), PriceMovementConfig)
        self.assertIsInstance(parse_condition_config("whatever", {"foo": 1}), CustomConfig)

    def test_camel_and_snake_keys(self):
        a = parse_condition_config("drift", {"thresholdPercent": "7.5", "driftType": "relative",
                                             "excludedSectors": ["Energy"]})
        b = parse_condition_config("drift", {"threshold_percent": 7.5, "drift_type": "relative",
                                             "excluded_sectors": ["Energy"]})
        self.assertEqual(a, b)
        self.assertEqual(a.threshold_percent, 7.5)
        self.assertEqual(a.drift_type, DriftMode.RELATIVE)
        self.assertEqual(a.excluded_sectors, ("Energy",))

    def test_bad_values_fall_back(self):
        config = parse_condition_config("sector_drift", {"thresholdPercent": "abc", "driftType": "sideways",
                                                         "sectorId": 12})
        self.assertEqual(config.threshold_percent, 5)
        self.assertEqual(config.drift_type, DriftMode.ABSOLUTE)
        self.assertEqual(config.sector_id, "12")

    def test_wire_is_snake_case(self):
        config = parse_condition_config("asset_class_drift", {"assetClassId": "eq", "thresholdPercent": 4})
        self.assertEqual(config.to_wire(), {
            "threshold_percent": 4.0,
            "drift_type": "absolute",
            "portfolio_id": None,
            "asset_class_id": "eq",
            "excluded_asset_classes": [],
        })

    def test_custom_keeps_unknown_fields(self):
        config = parse_condition_config("custom", {"someKey": 1})
        self.assertEqual(config.to_wire(), {"some_key": 1})


class AlertRuleWireTests(unittest.TestCase):
    def test_from_wire(self):
        rule = AlertRule.from_wire({
            "id": 7,
            "name": "Tech overweight",
            "is_active": True,
            "status": "ACTIVE",
            "frequency": "daily",
            "condition_type": "sector_drift",
            "condition_config": {"threshold_percent": 5, "sector_id": "Technology"},
            "action_type": "email",
            "created_at": "2026-09-01T10:00:00Z",
            "portfolio": 1,
        })
        self.assertEqual(rule.id, "7")
        self.assertEqual(rule.status, AlertStatus.ACTIVE)
        self.assertEqual(rule.frequency, AlertFrequency.DAILY)
        self.assertEqual(rule.action_type, ActionType.EMAIL)
        self.assertIsInstance(rule.condition_config, SectorDriftConfig)
        self.assertEqual(rule.condition_config.sector_id, "Technology")
        self.assertEqual(rule.portfolio_id, "1")
        self.assertEqual(rule.created_at, "2026-09-01T10:00:00+00:00")
        self.assertTrue(rule.is_drift_rule)

    def test_unknown_enums_are_lenient(self):
        rule = AlertRule.from_wire({"id": 1, "is_active": False, "status": "zombie", "frequency": "hourly",
                                    "condition_type": "moon_phase", "action_type": "pigeon"})
        self.assertEqual(rule.status, AlertStatus.PAUSED)
        self.assertEqual(rule.frequency, AlertFrequency.IMMEDIATE)
        self.assertEqual(rule.condition_type, ConditionType.CUSTOM)
        self.assertEqual(rule.action_type, ActionType.NOTIFICATION)
        self.assertFalse(rule.is_drift_rule)

    def test_view_is_camel_case(self):
        rule = AlertRule.from_wire({"id": 3, "name": "Drift", "condition_type": "drift",
                                    "condition_config": {"threshold_percent": 6}})
        view = rule.to_view()
        self.assertEqual(view["conditionType"], "drift")
        self.assertEqual(view["conditionConfig"]["thresholdPercent"], 6.0)
        self.assertIn("isActive", view)
        self.assertIn("lastTriggered", view)

    def test_wire_round_trip_keeps_variant(self):
        rule = AlertRule.from_wire({"id": 3, "condition_type": "drift",
                                    "condition_config": {"excluded_asset_classes": ["Cash"]}})
        again = AlertRule.from_wire(rule.to_wire())
        self.assertEqual(again, rule)


class AlertRuleInputTests(unittest.TestCase):
    def test_name_too_short(self):
        with self.assertRaises(ValidationError):
            AlertRuleInput(name="ab")

    def test_threshold_out_of_range(self):
        with self.assertRaises(ValidationError):
            AlertRuleInput(name="Big drift", condition_type="drift", condition_config={"thresholdPercent": 60})
        with self.assertRaises(ValidationError):
            AlertRuleInput(name="Tiny drift", condition_config={"threshold_percent": 0.05})

    def test_unusable_threshold_is_rejected(self):
        for raw in (0, "abc", None, True):
            with self.subTest(raw=raw), self.assertRaises(ValidationError):
                AlertRuleInput(name="Drift rule", condition_type="drift", condition_config={"thresholdPercent": raw})

    def test_missing_threshold_uses_default(self):
        wire = AlertRuleInput(name="Drift rule", condition_type="drift", condition_config={}).to_wire(partial=False)
        self.assertEqual(wire["condition_config"]["threshold_percent"], 5.0)

    def test_threshold_limits_follow_condition_type(self):
        rule_input = AlertRuleInput(condition_config={"thresholdPercent": 80})
        rule_input.check_threshold_for(ConditionType.PRICE_MOVEMENT)
        rule_input.check_threshold_for(ConditionType.CUSTOM)
        with self.assertRaises(AlertRuleValidationError):
            rule_input.check_threshold_for(ConditionType.SECTOR_DRIFT)

    def test_partial_config_merges_over_stored_config(self):
        rule = AlertRule.from_wire({
            "id": 4, "name": "Tech watch", "condition_type": "sector_drift",
            "condition_config": {"threshold_percent": 3, "drift_type": "relative", "sector_id": "tech",
                                 "excluded_sectors": ["Energy"]},
        })
        rule_input = AlertRuleInput(condition_config={"thresholdPercent": 7})
        wire = rule_input.to_wire(partial=True, condition_type=rule.condition_type,
                                  base_config=rule.condition_config)
        self.assertEqual(wire["condition_config"], {
            "threshold_percent": 7.0,
            "drift_type": "relative",
            "portfolio_id": None,
            "sector_id": "tech",
            "excluded_sectors": ["Energy"],
        })
        predicted = rule_input.predict_update(rule)
        self.assertEqual(predicted.condition_config.sector_id, "tech")
        self.assertEqual(predicted.condition_config.drift_type, DriftMode.RELATIVE)
        self.assertEqual(predicted.condition_config.threshold_percent, 7)

    def test_type_change_does_not_merge_stored_config(self):
        rule = AlertRule.from_wire({"id": 4, "condition_type": "sector_drift",
                                    "condition_config": {"sector_id": "tech"}})
        rule_input = AlertRuleInput(condition_type="asset_class_drift",
                                    condition_config={"assetClassId": "eq"})
        predicted = rule_input.predict_update(rule)
        self.assertIsInstance(predicted.condition_config, AssetClassDriftConfig)
        self.assertEqual(predicted.condition_config.asset_class_id, "eq")

    def test_accepts_camel_case_body(self):
        rule_input = AlertRuleInput.model_validate({
            "name": "Sector watch",
            "conditionType": "sector_drift",
            "conditionConfig": {"thresholdPercent": 4, "sectorId": "Technology"},
            "portfolioId": "12",
        })
        wire = rule_input.to_wire(partial=True)
        self.assertEqual(wire["condition_type"], "sector_drift")
        self.assertEqual(wire["condition_config"]["sector_id"], "Technology")
        self.assertEqual(wire["portfolio"], 12)
        self.assertNotIn("is_active", wire)

    def test_active_flag_derives_status(self):
        self.assertEqual(AlertRuleInput(is_active=False).to_wire(), {"is_active": False, "status": "paused"})
        self.assertEqual(AlertRuleInput(is_active=True).to_wire(), {"is_active": True, "status": "active"})

    def test_status_derives_active_flag(self):
        self.assertEqual(AlertRuleInput(status="paused").to_wire(), {"status": "paused", "is_active": False})
        self.assertEqual(AlertRuleInput(status="active").to_wire(), {"status": "active", "is_active": True})

    def test_create_defaults(self):
        wire = AlertRuleInput(name="Portfolio drift").to_wire(partial=False)
        self.assertEqual(wire["is_active"], True)
        self.assertEqual(wire["status"], "active")
        self.assertEqual(wire["frequency"], "immediate")
        self.assertEqual(wire["condition_type"], "drift")
        self.assertEqual(wire["condition_config"]["threshold_percent"], 5.0)
        self.assertEqual(wire["action_type"], "notification")

    def test_predict_update_keeps_untouched_fields(self):
        rule = AlertRule.from_wire({"id": 5, "name": "Old name", "condition_type": "drift",
                                    "condition_config": {"threshold_percent": 8}, "portfolio": 2})
        updated = AlertRuleInput(is_active=False).predict_update(rule)
        self.assertEqual(updated.name, "Old name")
        self.assertFalse(updated.is_active)
        self.assertEqual(updated.status, AlertStatus.PAUSED)
        self.assertEqual(updated.condition_config.threshold_percent, 8)
        self.assertEqual(updated.portfolio_id, "2")


class AlertHistoryTests(unittest.TestCase):
    def test_from_wire(self):
        history = AlertHistory.from_wire({
            "id": 40,
            "alert_rule": 7,
            "triggered_at": "2026-09-20T08:30:00Z",
            "was_triggered": True,
            "context_data": {"drift": 7.5},
            "action_results": [{"type": "notification", "ok": True}],
        })
        self.assertEqual(history.alert_rule_id, "7")
        self.assertIsNone(history.resolved_at)
        self.assertEqual(history.to_view()["contextData"], {"drift": 7.5})


if __name__ == "__main__":
    unittest.main()
