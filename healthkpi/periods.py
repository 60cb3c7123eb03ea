from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from pydantic import BaseModel


class Period(BaseModel):
    start: date
    end: date
    label: str = ""

    def query_bounds(self) -> tuple[str, str]:
        """Full-day bounds for range queries against the provider."""
        return (
            f"{self.start.isoformat()}T00:00:00.000Z",
            f"{self.end.isoformat()}T23:59:59.000Z",
        )

    @property
    def days(self) -> int:
        return (self.end - self.start).days


class PeriodRange(BaseModel):
    current: Period
    previous: Period


def _today_utc() -> date:
    return datetime.now(timezone.utc).date()


def current_and_previous_range(lookback_days: int, today: date | None = None) -> PeriodRange:
    """Current window and the equal-length window right before it.

    The previous window ends on the day the current one starts.
    """
    if lookback_days < 1:
        raise ValueError(f"Invalid lookback period: {lookback_days}")

    end = today or _today_utc()
    try:
        start = end - timedelta(days=lookback_days)
        prev_start = start - timedelta(days=lookback_days)
    except OverflowError:
        raise ValueError(f"Invalid lookback period: {lookback_days}") from None

    return PeriodRange(
        current=Period(start=start, end=end, label=f"Últimos {lookback_days} días"),
        previous=Period(start=prev_start, end=start, label=f"{lookback_days} días anteriores"),
    )
