from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Union


# ---------------------------------------------------------------------------
# Tagged metric results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Observed:
    value: float

    @property
    def number(self) -> float | None:
        return self.value

    @property
    def is_estimate(self) -> bool:
        return False


@dataclass(frozen=True)
class Estimated:
    value: float
    basis: str

    @property
    def number(self) -> float | None:
        return self.value

    @property
    def is_estimate(self) -> bool:
        return True


@dataclass(frozen=True)
class Unavailable:
    reason: str = "missing"

    @property
    def number(self) -> float | None:
        return None

    @property
    def is_estimate(self) -> bool:
        return False


MetricResult = Union[Observed, Estimated, Unavailable]


# ---------------------------------------------------------------------------
# Numbers
# ---------------------------------------------------------------------------


def _to_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        f = float(value)
        return f if math.isfinite(f) else None
    if isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        try:
            f = float(s)
        except ValueError:
            return None
        return f if math.isfinite(f) else None
    return None


def extract_value(field: Any) -> float | None:
    """Numeric value of a raw field.

    Accepts a bare number, a numeric string or a ``{"value": ..., "unit": ...}``
    envelope. Anything else resolves to None; this never raises.
    """
    if field is None:
        return None
    if isinstance(field, Mapping):
        if "value" not in field:
            return None
        return _to_float(field.get("value"))
    return _to_float(field)


def resolve_path(record: Any, path: str) -> Any:
    """Read a dotted path (``data.weight``) through nested mappings."""
    cur = record
    for part in path.split("."):
        if not isinstance(cur, Mapping):
            return None
        cur = cur.get(part)
        if cur is None:
            return None
    return cur


def first_value(record: Any, paths: tuple[str, ...]) -> float | None:
    for p in paths:
        v = extract_value(resolve_path(record, p))
        if v is not None:
            return v
    return None


def observe(record: Any, paths: tuple[str, ...]) -> MetricResult:
    v = first_value(record, paths)
    if v is None:
        return Unavailable()
    return Observed(v)


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------


def _from_epoch_seconds(seconds: float) -> datetime | None:
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def parse_timestamp(raw: Any) -> datetime | None:
    """Parse any timestamp shape the provider has used into an aware UTC datetime.

    Supported: ISO date/datetime strings (naive = UTC), epoch milliseconds,
    Firestore ``{_seconds, _nanoseconds}`` objects and date/datetime objects.
    """
    if raw is None or isinstance(raw, bool):
        return None

    if isinstance(raw, datetime):
        dt = raw
    elif isinstance(raw, date):
        dt = datetime(raw.year, raw.month, raw.day)
    elif isinstance(raw, (int, float)):
        if not math.isfinite(raw):
            return None
        return _from_epoch_seconds(float(raw) / 1000.0)
    elif isinstance(raw, Mapping):
        seconds = _to_float(raw.get("_seconds", raw.get("seconds")))
        if seconds is None:
            return None
        nanos = _to_float(raw.get("_nanoseconds", raw.get("nanoseconds"))) or 0.0
        return _from_epoch_seconds(seconds + nanos / 1e9)
    elif isinstance(raw, str):
        s = raw.strip()
        if not s:
            return None
        try:
            dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso_z(dt: datetime) -> str:
    """``2024-01-01T00:00:00.000Z``"""
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"
