from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from .extract import (
    Estimated,
    MetricResult,
    Observed,
    Unavailable,
    extract_value,
    first_value,
    observe,
    parse_timestamp,
    resolve_path,
    to_iso_z,
)
from .logging_config import get_logger

logger = get_logger(__name__)

# Share of total sleep assumed to be deep sleep when no stage data exists.
DEEP_SLEEP_RATIO = 0.22

SOURCE_TYPES: tuple[str, ...] = ("weight", "sleep", "waist", "steps", "analytics")


@dataclass(frozen=True)
class SourceSchema:
    timestamp: tuple[str, ...]
    metrics: dict[str, tuple[str, ...]]


# Every known provider shape lives here. Candidates are tried in order; the
# first one that resolves wins.
SOURCE_SCHEMAS: dict[str, SourceSchema] = {
    "weight": SourceSchema(
        timestamp=("date", "data.date"),
        metrics={
            "weight": ("weight", "data.weight"),
            "muscle": ("muscle", "muscle_mass", "data.muscle", "data.muscle_mass"),
            "fat": ("fat", "fat_mass_weight", "data.fat", "data.fat_mass_weight"),
        },
    ),
    "sleep": SourceSchema(
        timestamp=("datetime", "date", "data.datetime"),
        metrics={
            "duration": ("duration", "totalMinutesAsleep", "data.duration", "data.totalMinutesAsleep"),
            "timeInBed": ("totalTimeInBed", "data.totalTimeInBed"),
        },
    ),
    "waist": SourceSchema(
        timestamp=("measurementTimeStamp", "date", "data.measurementTimeStamp"),
        metrics={
            # the wire calls it `waist`; charts and KPIs call it `measurement`
            "measurement": ("waist", "measurementWaistCm", "data.waist", "data.measurementWaistCm"),
            "waistToHeight": ("ica", "data.ica"),
        },
    ),
    "steps": SourceSchema(
        timestamp=("date", "data.date"),
        metrics={
            "steps": ("steps", "count", "data.steps", "data.count"),
        },
    ),
    "analytics": SourceSchema(
        timestamp=("date", "fechaSubida", "data.date"),
        metrics={},
    ),
}

DEEP_SLEEP_PATHS = ("deepSleep", "data.deepSleep")
SLEEP_STAGE_PATHS = ("stages", "data.stages", "levels.summary", "data.levels.summary")
SLEEP_STAGES = ("deep", "light", "rem", "wake")
# stages that count as time asleep
ASLEEP_STAGES = ("deep", "light", "rem")


@dataclass
class CanonicalRecord:
    date: str
    metrics: dict[str, float | None] = field(default_factory=dict)
    # metric -> basis, for every value that was inferred rather than measured
    estimates: dict[str, str] = field(default_factory=dict)
    attributes: dict[str, Any] = field(default_factory=dict)

    def get(self, metric: str) -> float | None:
        return self.metrics.get(metric)

    def set_result(self, metric: str, result: MetricResult) -> None:
        self.metrics[metric] = result.number
        if isinstance(result, Estimated):
            self.estimates[metric] = result.basis


def _stage_breakdown(raw: Mapping[str, Any]) -> Mapping[str, Any] | None:
    for p in SLEEP_STAGE_PATHS:
        stages = resolve_path(raw, p)
        if isinstance(stages, Mapping):
            return stages
    return None


def _stage_minutes(value: Any) -> float | None:
    # Some payloads nest stage totals as {"minutes": n, "count": k}.
    if isinstance(value, Mapping) and "minutes" in value:
        return extract_value(value.get("minutes"))
    return extract_value(value)


def resolve_deep_sleep(raw: Mapping[str, Any]) -> MetricResult:
    """Deep sleep for one raw sleep record.

    Explicit figure, then the stage breakdown, then DEEP_SLEEP_RATIO of the
    total duration. This is the only place the estimate is computed.
    """
    explicit = first_value(raw, DEEP_SLEEP_PATHS)
    if explicit is not None:
        return Observed(explicit)

    stages = _stage_breakdown(raw)
    if stages is not None:
        deep = _stage_minutes(stages.get("deep"))
        if deep is not None:
            return Observed(deep)

    duration = first_value(raw, SOURCE_SCHEMAS["sleep"].metrics["duration"])
    if duration is None:
        return Unavailable("no_duration")
    return Estimated(duration * DEEP_SLEEP_RATIO, basis="duration_ratio")


_RANGE_RE = re.compile(r"^\s*(-?\d+(?:[.,]\d+)?)\s*-\s*(-?\d+(?:[.,]\d+)?)\s*$")


def _num(s: str) -> float | None:
    return extract_value(s.strip().replace(",", "."))


_LEADING_NUMBER_RE = re.compile(r"^\s*(-?\d+(?:[.,]\d+)?)")


def _marker_value(raw: Any) -> float | None:
    # lab values often carry their unit inline ("160 mg/dL")
    v = extract_value(raw)
    if v is None and isinstance(raw, str):
        m = _LEADING_NUMBER_RE.match(raw)
        if m:
            v = _num(m.group(1))
    return v


def marker_out_of_range(value: float | None, reference: Any) -> bool | None:
    """Compare a lab value with its reference text (``<200``, ``>40``, ``70-100``)."""
    if value is None or not isinstance(reference, str) or not reference.strip():
        return None
    ref = reference.strip()
    if ref[0] in "<>":
        bound = _num(ref.lstrip("<>="))
        if bound is None:
            return None
        return value > bound if ref[0] == "<" else value < bound
    m = _RANGE_RE.match(ref)
    if not m:
        return None
    lo, hi = _num(m.group(1)), _num(m.group(2))
    if lo is None or hi is None:
        return None
    return value < lo or value > hi


def _normalize_markers(raw_markers: Any) -> list[dict[str, Any]]:
    if not isinstance(raw_markers, list):
        return []
    out: list[dict[str, Any]] = []
    for m in raw_markers:
        if not isinstance(m, Mapping):
            continue
        value = _marker_value(m.get("value"))
        reference = m.get("reference")
        out.append(
            {
                "name": m.get("name") or m.get("analytic"),
                "value": value,
                "unit": m.get("unit"),
                "reference": reference,
                "outOfRange": marker_out_of_range(value, reference),
            }
        )
    return out


def _apply_sleep(rec: CanonicalRecord, raw: Mapping[str, Any]) -> None:
    rec.set_result("deepSleep", resolve_deep_sleep(raw))
    stages = _stage_breakdown(raw)
    if stages is not None:
        for stage in SLEEP_STAGES:
            rec.metrics["stage" + stage.capitalize()] = _stage_minutes(stages.get(stage))
        if rec.get("duration") is None:
            asleep = [m for m in (_stage_minutes(stages.get(s)) for s in ASLEEP_STAGES) if m is not None]
            if asleep:
                rec.set_result("duration", Estimated(sum(asleep), basis="stages"))
    quality = raw.get("quality", resolve_path(raw, "data.quality"))
    if quality is not None:
        rec.attributes["quality"] = quality


def _apply_analytics(rec: CanonicalRecord, raw: Mapping[str, Any]) -> None:
    markers = _normalize_markers(raw.get("markers", resolve_path(raw, "data.markers")))
    rec.attributes["id"] = raw.get("id")
    rec.attributes["type"] = raw.get("type", resolve_path(raw, "data.type"))
    rec.attributes["markers"] = markers
    rec.metrics["markerCount"] = float(len(markers))
    rec.metrics["outOfRangeCount"] = float(sum(1 for m in markers if m["outOfRange"]))


def normalize_record(source_type: str, raw: Any) -> CanonicalRecord | None:
    schema = SOURCE_SCHEMAS[source_type]
    if not isinstance(raw, Mapping):
        return None

    dt = None
    for p in schema.timestamp:
        dt = parse_timestamp(resolve_path(raw, p))
        if dt is not None:
            break
    if dt is None:
        return None

    rec = CanonicalRecord(date=to_iso_z(dt))
    for metric, paths in schema.metrics.items():
        rec.set_result(metric, observe(raw, paths))

    if source_type == "sleep":
        _apply_sleep(rec, raw)
    elif source_type == "analytics":
        _apply_analytics(rec, raw)
    return rec


def normalize(source_type: str, raw_records: Iterable[Any] | None) -> list[CanonicalRecord]:
    """Canonicalize one raw collection. Records without a usable timestamp are dropped."""
    if source_type not in SOURCE_SCHEMAS:
        raise ValueError(f"Unknown source type: {source_type}")

    out: list[CanonicalRecord] = []
    dropped = 0
    for raw in raw_records or []:
        rec = normalize_record(source_type, raw)
        if rec is None:
            dropped += 1
            continue
        out.append(rec)

    if dropped:
        logger.debug("records_dropped", source=source_type, dropped=dropped, kept=len(out))
    return out


def normalize_collections(raw_by_source: Mapping[str, Any] | None) -> dict[str, list[CanonicalRecord]]:
    raw_by_source = raw_by_source or {}
    return {s: normalize(s, raw_by_source.get(s)) for s in SOURCE_TYPES}
