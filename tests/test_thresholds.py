import unittest

from driftwatch.drift.models import DriftData, DriftItem, DriftMode, Severity
from driftwatch.drift.normalizer import normalize_drift_data
from driftwatch.drift.thresholds import classify, evaluate_bucket, evaluate_item, exceeds_threshold


class ClassifyTests(unittest.TestCase):
    def test_tiers(self):
        self.assertEqual(classify(2.4, 5), Severity.SAFE)
        self.assertEqual(classify(2.5, 5), Severity.WARNING)
        self.assertEqual(classify(3.75, 5), Severity.ELEVATED)
        self.assertEqual(classify(4.99, 5), Severity.ELEVATED)
        self.assertEqual(classify(5.0, 5), Severity.CRITICAL)

    def test_sign_ignored(self):
        self.assertEqual(classify(-7.5, 5), Severity.CRITICAL)

    def test_threshold_boundary(self):
        self.assertTrue(exceeds_threshold(5.0, 5))
        self.assertTrue(exceeds_threshold(-5.0, 5))
        self.assertFalse(exceeds_threshold(4.99, 5))


class EvaluateTests(unittest.TestCase):
    def test_mode_changes_severity(self):
        item = DriftItem(name="Gold", current_allocation=8, target_allocation=6, absolute_drift=2, relative_drift=33.3)
        self.assertEqual(evaluate_item(item, 5, DriftMode.ABSOLUTE).severity, Severity.SAFE)
        self.assertEqual(evaluate_item(item, 5, DriftMode.RELATIVE).severity, Severity.CRITICAL)

    def test_sector_scenario(self):
        data = normalize_drift_data({"items": [
            {"name": "Technology", "current_allocation": 32.5, "target_allocation": 25},
            {"name": "Healthcare", "current_allocation": 12.8, "target_allocation": 15},
        ]})
        view = evaluate_bucket(data, 5, "absolute")
        tech, health = view.rows
        self.assertEqual(tech.item.name, "Technology")
        self.assertAlmostEqual(tech.value, 7.5)
        self.assertTrue(tech.exceeded)
        self.assertAlmostEqual(health.value, -2.2)
        self.assertFalse(health.exceeded)
        self.assertEqual(view.exceeded_count, 1)
        self.assertGreaterEqual(view.total_drift + 1e-9, 9.7)
        self.assertEqual(view.total_severity, Severity.CRITICAL)

    def test_row_view(self):
        data = DriftData(items=(DriftItem(name="A", absolute_drift=6, relative_drift=12),))
        row = evaluate_bucket(data, 5, DriftMode.ABSOLUTE).rows[0].to_view()
        self.assertEqual(row["name"], "A")
        self.assertEqual(row["drift"], 6)
        self.assertEqual(row["severity"], "critical")
        self.assertTrue(row["exceededThreshold"])
        self.assertIn("absoluteDrift", row)

    def test_empty_bucket(self):
        view = evaluate_bucket(None, 5, DriftMode.ABSOLUTE)
        self.assertEqual(view.rows, ())
        self.assertEqual(view.total_drift, 0.0)
        self.assertEqual(view.total_severity, Severity.SAFE)


if __name__ == "__main__":
    unittest.main()
