from __future__ import annotations

from collections.abc import Mapping
from datetime import date
from typing import Any

from . import settings
from .charts import format_chart_data
from .kpis import StepsFallback, build_kpis, kpi_estimates
from .logging_config import get_logger
from .normalize import CanonicalRecord, normalize_collections
from .periods import PeriodRange, current_and_previous_range
from .provider import ProviderClient

logger = get_logger(__name__)


class NoHealthDataError(LookupError):
    """No usable record in any source for the current period."""


def default_steps_fallback() -> StepsFallback | None:
    if settings.STEPS_FALLBACK_CURRENT is None or settings.STEPS_FALLBACK_PREVIOUS is None:
        return None
    return StepsFallback(
        current=settings.STEPS_FALLBACK_CURRENT,
        previous=settings.STEPS_FALLBACK_PREVIOUS,
    )


def _record_counts(collections: Mapping[str, list[CanonicalRecord]]) -> dict[str, int]:
    return {k: len(v) for k, v in collections.items()}


def build_dashboard(
    current_raw: Mapping[str, Any] | None,
    previous_raw: Mapping[str, Any] | None,
    periods: PeriodRange | None = None,
    steps_fallback: StepsFallback | None = None,
    require_data: bool = False,
) -> dict[str, Any]:
    """KPIs and chart series from raw provider collections of two periods.

    Charts use the current period only. With ``require_data`` an empty current
    period raises NoHealthDataError instead of returning all-null KPIs.
    """
    current = normalize_collections(current_raw)
    previous = normalize_collections(previous_raw)

    counts = _record_counts(current)
    if require_data and not any(counts.values()):
        raise NoHealthDataError("No health records for the current period")

    out: dict[str, Any] = {
        "kpis": build_kpis(current, previous, steps_fallback=steps_fallback),
        "chartData": format_chart_data(current),
        "estimates": kpi_estimates(current, previous, steps_fallback=steps_fallback),
        "recordCounts": {"current": counts, "previous": _record_counts(previous)},
        "analytics": [
            {"date": r.date, **r.attributes}
            for r in sorted(current["analytics"], key=lambda r: r.date, reverse=True)
        ],
    }
    if periods is not None:
        out["periods"] = periods.model_dump(mode="json")
    return out


async def load_dashboard(
    client: ProviderClient,
    user_id: str,
    lookback_days: int,
    by_clinical_record: bool = False,
    today: date | None = None,
    steps_fallback: StepsFallback | None = None,
) -> dict[str, Any]:
    periods = current_and_previous_range(lookback_days, today=today)
    current_raw, previous_raw = await client.fetch_range(user_id, periods, by_clinical_record)

    result = build_dashboard(
        current_raw,
        previous_raw,
        periods=periods,
        steps_fallback=steps_fallback,
        require_data=True,
    )
    result["period"] = lookback_days
    logger.info(
        "dashboard_built",
        period=lookback_days,
        current=result["recordCounts"]["current"],
        previous=result["recordCounts"]["previous"],
    )
    return result
