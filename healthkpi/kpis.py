from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from .extract import extract_value
from .normalize import CanonicalRecord

# KPI name -> (source collection, canonical metric)
KPI_METRICS: dict[str, tuple[str, str]] = {
    "weight": ("weight", "weight"),
    "muscle": ("weight", "muscle"),
    "fat": ("weight", "fat"),
    "totalSleep": ("sleep", "duration"),
    "deepSleep": ("sleep", "deepSleep"),
    "steps": ("steps", "steps"),
    "waist": ("waist", "measurement"),
}


@dataclass(frozen=True)
class StepsFallback:
    """Placeholder step averages for periods without any step records."""

    current: float
    previous: float


def _metric_of(record: Any, metric: str) -> float | None:
    if isinstance(record, CanonicalRecord):
        v = record.get(metric)
    elif isinstance(record, Mapping):
        v = extract_value(record.get(metric))
    else:
        return None
    if v is None or isinstance(v, bool) or not math.isfinite(v):
        return None
    return float(v)


def average(records: Iterable[Any] | None, metric: str) -> float | None:
    vals = [v for v in (_metric_of(r, metric) for r in records or []) if v is not None]
    if not vals:
        return None
    return sum(vals) / len(vals)


def percent_change(current: float | None, previous: float | None) -> float | None:
    # A current value of exactly 0 counts as missing too (kept for compatibility).
    if not current or not previous:
        return None
    return (current - previous) / previous * 100.0


def _kpi(current: float | None, previous: float | None) -> dict[str, float | None]:
    return {"current": current, "previous": previous, "change": percent_change(current, previous)}


def build_kpis(
    current_set: Mapping[str, list[CanonicalRecord]],
    previous_set: Mapping[str, list[CanonicalRecord]],
    steps_fallback: StepsFallback | None = None,
) -> dict[str, dict[str, float | None]]:
    out: dict[str, dict[str, float | None]] = {}
    for name, (source, metric) in KPI_METRICS.items():
        cur = average(current_set.get(source), metric)
        prev = average(previous_set.get(source), metric)
        if name == "steps" and steps_fallback is not None:
            if cur is None:
                cur = steps_fallback.current
            if prev is None:
                prev = steps_fallback.previous
        out[name] = _kpi(cur, prev)
    return out


def kpi_estimates(
    current_set: Mapping[str, list[CanonicalRecord]],
    previous_set: Mapping[str, list[CanonicalRecord]],
    steps_fallback: StepsFallback | None = None,
) -> dict[str, list[str]]:
    """Which KPI values rest on inferred data, keyed by KPI name.

    Values: ``"current:<basis>"`` / ``"previous:<basis>"``; ``placeholder`` is
    the configured steps fallback.
    """
    out: dict[str, list[str]] = {}
    for name, (source, metric) in KPI_METRICS.items():
        notes: list[str] = []
        for label, data in (("current", current_set), ("previous", previous_set)):
            records = data.get(source)
            bases = sorted({r.estimates[metric] for r in records or [] if metric in r.estimates})
            notes.extend(f"{label}:{b}" for b in bases)
            if name == "steps" and steps_fallback is not None and average(records, metric) is None:
                notes.append(f"{label}:placeholder")
        if notes:
            out[name] = notes
    return out
