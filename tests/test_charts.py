from __future__ import annotations

import copy
import unittest

from healthkpi.charts import FAT_LABEL, MUSCLE_LABEL, format_chart_data, format_for_charts
from healthkpi.normalize import normalize, normalize_collections


class WeightChartTests(unittest.TestCase):
    def test_round_trip_from_enveloped_record(self) -> None:
        records = normalize("weight", [{"date": "2024-01-01", "data": {"weight": {"value": "70.5"}}}])
        self.assertEqual(
            format_for_charts(records, "weight"),
            [{"date": "2024-01-01T00:00:00.000Z", "weight": 70.5}],
        )

    def test_sorted_ascending(self) -> None:
        records = normalize(
            "weight",
            [
                {"date": "2024-01-03", "weight": 69.8},
                {"date": "2024-01-01", "weight": 70.5},
                {"date": "2024-01-02T12:00:00+02:00", "weight": 70.1},
            ],
        )
        points = format_for_charts(records, "weight")
        self.assertEqual([p["weight"] for p in points], [70.5, 70.1, 69.8])

    def test_does_not_mutate_records(self) -> None:
        records = normalize("weight", [{"date": "2024-01-02", "weight": 70}, {"date": "2024-01-01", "weight": 71}])
        before = copy.deepcopy(records)
        format_chart_data({"weight": records})
        self.assertEqual(records, before)


class CompositionChartTests(unittest.TestCase):
    def test_one_record_yields_two_points(self) -> None:
        records = normalize("weight", [{"date": "2024-01-01", "muscle": 35.2, "fat": 15.8}])
        points = format_for_charts(records, "composition")
        self.assertEqual(len(points), 2)
        self.assertEqual(points[0]["date"], points[1]["date"])
        self.assertEqual([p["breakdown"] for p in points], ["muscle_mass", "fat_mass_weight"])
        self.assertEqual([p["type"] for p in points], [MUSCLE_LABEL, FAT_LABEL])
        self.assertEqual([p["value"] for p in points], [35.2, 15.8])

    def test_interleaved_by_date(self) -> None:
        records = normalize(
            "weight",
            [
                {"date": "2024-01-02", "muscle": 35.0, "fat": 16.0},
                {"date": "2024-01-01", "muscle": 35.2, "fat": 15.8},
            ],
        )
        points = format_for_charts(records, "composition")
        self.assertEqual(
            [(p["date"][:10], p["breakdown"]) for p in points],
            [
                ("2024-01-01", "muscle_mass"),
                ("2024-01-01", "fat_mass_weight"),
                ("2024-01-02", "muscle_mass"),
                ("2024-01-02", "fat_mass_weight"),
            ],
        )

    def test_missing_part_is_skipped(self) -> None:
        records = normalize("weight", [{"date": "2024-01-01", "weight": 70, "muscle": 35.2}])
        points = format_for_charts(records, "composition")
        self.assertEqual([p["breakdown"] for p in points], ["muscle_mass"])


class SleepChartTests(unittest.TestCase):
    def test_estimated_deep_sleep(self) -> None:
        records = normalize("sleep", [{"datetime": "2024-01-01", "duration": 400, "quality": "good"}])
        (point,) = format_for_charts(records, "sleep")
        self.assertAlmostEqual(point["deepSleep"], 88.0)
        self.assertTrue(point["deepSleepEstimated"])
        self.assertEqual(point["quality"], "good")
        self.assertEqual(point["duration"], 400.0)

    def test_stage_data_is_used(self) -> None:
        raw = {"datetime": "2024-01-01", "totalMinutesAsleep": 420, "stages": {"deep": 70}}
        (point,) = format_for_charts(normalize("sleep", [raw]), "sleep")
        self.assertEqual(point["duration"], 420.0)
        self.assertEqual(point["deepSleep"], 70.0)
        self.assertFalse(point["deepSleepEstimated"])

    def test_stage_only_record_keeps_duration(self) -> None:
        raw = {"datetime": "2024-01-01", "stages": {"deep": 80, "light": 220, "rem": 90, "wake": 30}}
        (point,) = format_for_charts(normalize("sleep", [raw]), "sleep")
        self.assertEqual(point["duration"], 390.0)
        self.assertEqual(point["deepSleep"], 80.0)
        self.assertFalse(point["deepSleepEstimated"])
        self.assertNotIn("quality", point)


class ChartDataTests(unittest.TestCase):
    def test_all_series(self) -> None:
        collections = normalize_collections(
            {
                "weight": [{"date": "2024-01-01", "weight": 70.5, "muscle": 35.2, "fat": 15.8}],
                "sleep": [{"datetime": "2024-01-01", "duration": 7.5}],
                "steps": [{"date": "2024-01-02", "steps": 9200}, {"date": "2024-01-01", "steps": 8500}],
                "waist": [{"measurementTimeStamp": "2024-01-01", "waist": 85.2}],
            }
        )
        data = format_chart_data(collections)
        self.assertEqual(
            set(data), {"weightData", "compositionData", "sleepData", "stepsData", "waistData"}
        )
        self.assertEqual([p["steps"] for p in data["stepsData"]], [8500.0, 9200.0])
        self.assertEqual(data["waistData"], [{"date": "2024-01-01T00:00:00.000Z", "measurement": 85.2}])
        self.assertEqual(len(data["compositionData"]), 2)

    def test_empty_collections(self) -> None:
        data = format_chart_data({})
        self.assertTrue(all(v == [] for v in data.values()))

    def test_unknown_series(self) -> None:
        with self.assertRaises(ValueError):
            format_for_charts([], "heart_rate")


if __name__ == "__main__":
    unittest.main()
