from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from .normalize import CanonicalRecord

MUSCLE_LABEL = "Masa Muscular"
FAT_LABEL = "Masa Grasa"

# composition series: (canonical metric, chart label, breakdown discriminator)
COMPOSITION_PARTS: tuple[tuple[str, str, str], ...] = (
    ("muscle", MUSCLE_LABEL, "muscle_mass"),
    ("fat", FAT_LABEL, "fat_mass_weight"),
)


def _sorted_by_date(points: list[dict[str, Any]]) -> list[dict[str, Any]]:
    # Canonical dates share one fixed-width UTC format, so string order is time order.
    return sorted(points, key=lambda p: p["date"])


def _single_series(records: Iterable[CanonicalRecord], metric: str, field: str) -> list[dict[str, Any]]:
    points = [
        {"date": r.date, field: r.get(metric)}
        for r in records
        if r.get(metric) is not None
    ]
    return _sorted_by_date(points)


def weight_series(records: Iterable[CanonicalRecord]) -> list[dict[str, Any]]:
    return _single_series(records, "weight", "weight")


def composition_series(records: Iterable[CanonicalRecord]) -> list[dict[str, Any]]:
    records = list(records)
    points: list[dict[str, Any]] = []
    for metric, label, breakdown in COMPOSITION_PARTS:
        for r in records:
            v = r.get(metric)
            if v is None:
                continue
            points.append({"date": r.date, "value": v, "type": label, "breakdown": breakdown})
    return _sorted_by_date(points)


def sleep_series(records: Iterable[CanonicalRecord]) -> list[dict[str, Any]]:
    points: list[dict[str, Any]] = []
    for r in records:
        duration = r.get("duration")
        deep = r.get("deepSleep")
        if duration is None and deep is None:
            continue
        p: dict[str, Any] = {
            "date": r.date,
            "duration": duration,
            "deepSleep": deep,
            "deepSleepEstimated": "deepSleep" in r.estimates,
        }
        if r.attributes.get("quality") is not None:
            p["quality"] = r.attributes["quality"]
        points.append(p)
    return _sorted_by_date(points)


def steps_series(records: Iterable[CanonicalRecord]) -> list[dict[str, Any]]:
    return _single_series(records, "steps", "steps")


def waist_series(records: Iterable[CanonicalRecord]) -> list[dict[str, Any]]:
    return _single_series(records, "measurement", "measurement")


SERIES_BUILDERS = {
    "weight": weight_series,
    "composition": composition_series,
    "sleep": sleep_series,
    "steps": steps_series,
    "waist": waist_series,
}


def format_for_charts(records: Iterable[CanonicalRecord] | None, series: str) -> list[dict[str, Any]]:
    try:
        builder = SERIES_BUILDERS[series]
    except KeyError:
        raise ValueError(f"Unknown chart series: {series}") from None
    return builder(records or [])


def format_chart_data(collections: Mapping[str, list[CanonicalRecord]]) -> dict[str, list[dict[str, Any]]]:
    weight = collections.get("weight") or []
    return {
        "weightData": format_for_charts(weight, "weight"),
        "compositionData": format_for_charts(weight, "composition"),
        "sleepData": format_for_charts(collections.get("sleep"), "sleep"),
        "stepsData": format_for_charts(collections.get("steps"), "steps"),
        "waistData": format_for_charts(collections.get("waist"), "waist"),
    }
