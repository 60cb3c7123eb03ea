from __future__ import annotations

import json
import unittest
from datetime import date

from healthkpi.dashboard import NoHealthDataError, build_dashboard, load_dashboard
from healthkpi.kpis import StepsFallback
from healthkpi.periods import current_and_previous_range
from healthkpi.provider import empty_collections


def _collections() -> tuple[dict, dict]:
    current = {
        "weight": [
            {"date": "2024-03-05", "data": {"weight": {"value": "71.0", "unit": "kg"}, "muscle_mass": 35.4, "fat_mass_weight": 15.5}},
            {"date": "2024-03-01", "data": {"weight": {"value": "72.0", "unit": "kg"}, "muscle_mass": 35.0, "fat_mass_weight": 16.0}},
        ],
        "sleep": [{"datetime": "2024-03-02", "duration": 400, "quality": "good"}],
        "waist": [{"measurementTimeStamp": "2024-03-03", "waist": 84}],
        "steps": [{"date": "2024-03-02", "steps": 9000}],
        "analytics": [
            {"id": "a1", "date": "2024-03-04", "type": "blood_test", "markers": [{"name": "LDL", "value": 160, "reference": "<130"}]}
        ],
    }
    previous = {
        "weight": [{"date": "2024-02-01", "weight": 75.0, "muscle": 34.0, "fat": 17.0}],
        "sleep": [{"datetime": "2024-02-02", "totalMinutesAsleep": 420, "stages": {"deep": 80}}],
        "waist": [{"measurementTimeStamp": "2024-02-03", "waist": 86}],
        "steps": [{"date": "2024-02-02", "steps": 10000}],
        "analytics": [],
    }
    return current, previous


class BuildDashboardTests(unittest.TestCase):
    def test_kpis_and_charts(self) -> None:
        current, previous = _collections()
        out = build_dashboard(current, previous)

        self.assertAlmostEqual(out["kpis"]["weight"]["current"], 71.5)
        self.assertAlmostEqual(out["kpis"]["weight"]["previous"], 75.0)
        self.assertAlmostEqual(out["kpis"]["deepSleep"]["current"], 88.0)
        self.assertAlmostEqual(out["kpis"]["deepSleep"]["previous"], 80.0)
        self.assertEqual(out["estimates"], {"deepSleep": ["current:duration_ratio"]})

        charts = out["chartData"]
        self.assertEqual([p["weight"] for p in charts["weightData"]], [72.0, 71.0])
        self.assertEqual(len(charts["compositionData"]), 4)
        # charts only carry the current period
        self.assertTrue(all(p["date"].startswith("2024-03") for p in charts["weightData"]))

        self.assertEqual(out["analytics"][0]["markers"][0]["outOfRange"], True)
        self.assertEqual(out["recordCounts"]["current"]["weight"], 2)

    def test_waist_failure_in_both_periods(self) -> None:
        current, previous = _collections()
        current["waist"] = []
        previous["waist"] = []
        out = build_dashboard(current, previous)

        self.assertEqual(out["kpis"]["waist"], {"current": None, "previous": None, "change": None})
        for name in ("weight", "muscle", "fat", "totalSleep", "deepSleep", "steps"):
            self.assertIsNotNone(out["kpis"][name]["current"], name)
            self.assertIsNotNone(out["kpis"][name]["change"], name)
        self.assertEqual(out["chartData"]["waistData"], [])

    def test_kpis_serialize_as_numbers(self) -> None:
        current, previous = _collections()
        out = build_dashboard(current, previous)
        decoded = json.loads(json.dumps(out["kpis"]))
        for kpi in decoded.values():
            for v in kpi.values():
                self.assertTrue(v is None or isinstance(v, (int, float)))

    def test_empty_current_period(self) -> None:
        _, previous = _collections()
        out = build_dashboard(empty_collections(), previous)
        self.assertIsNone(out["kpis"]["weight"]["current"])
        self.assertEqual(out["kpis"]["weight"]["previous"], 75.0)
        with self.assertRaises(NoHealthDataError):
            build_dashboard(empty_collections(), previous, require_data=True)

    def test_steps_fallback(self) -> None:
        current, previous = _collections()
        current["steps"] = []
        out = build_dashboard(current, previous, steps_fallback=StepsFallback(8500, 8200))
        self.assertEqual(out["kpis"]["steps"]["current"], 8500)
        self.assertIn("current:placeholder", out["estimates"]["steps"])

    def test_periods_included(self) -> None:
        current, previous = _collections()
        periods = current_and_previous_range(30, today=date(2024, 3, 31))
        out = build_dashboard(current, previous, periods=periods)
        self.assertEqual(out["periods"]["current"]["start"], "2024-03-01")
        self.assertEqual(out["periods"]["previous"]["end"], "2024-03-01")


class _StubProvider:
    def __init__(self, current: dict, previous: dict) -> None:
        self.current = current
        self.previous = previous
        self.calls: list[tuple] = []

    async def fetch_range(self, user_id, periods, by_clinical_record=False):
        self.calls.append((user_id, periods, by_clinical_record))
        return self.current, self.previous


class LoadDashboardTests(unittest.IsolatedAsyncioTestCase):
    async def test_load_dashboard(self) -> None:
        current, previous = _collections()
        provider = _StubProvider(current, previous)
        out = await load_dashboard(provider, "HC-123", 30, by_clinical_record=True, today=date(2024, 3, 31))

        user_id, periods, by_hc = provider.calls[0]
        self.assertEqual(user_id, "HC-123")
        self.assertTrue(by_hc)
        self.assertEqual(periods.previous.end, periods.current.start)
        self.assertEqual(out["period"], 30)
        self.assertAlmostEqual(out["kpis"]["steps"]["change"], -10.0)

    async def test_no_data(self) -> None:
        provider = _StubProvider(empty_collections(), empty_collections())
        with self.assertRaises(NoHealthDataError):
            await load_dashboard(provider, "u1", 7)

    async def test_invalid_period(self) -> None:
        provider = _StubProvider(empty_collections(), empty_collections())
        with self.assertRaises(ValueError):
            await load_dashboard(provider, "u1", 0)
        self.assertEqual(provider.calls, [])


if __name__ == "__main__":
    unittest.main()
