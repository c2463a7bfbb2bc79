"""Investment (media spend) pro-ration.

Each entry's amount is spread evenly over the days of its inclusive span, and
overlapping entries add up. `total_cost` walks every day of the range against
every entry, O(days x entries): fine for dashboard ranges of up to a few hundred
days and entries. `daily_cost_series` builds the day -> cost map in one pass
per entry and is what the charts use.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from core.filters import DateRange
from core.normalize import coerce_value, parse_date


class InvalidCostEntry(ValueError):
    """Raised when a cost entry cannot be pro-rated (bad dates, inverted span, negative amount)."""


@dataclass(frozen=True)
class CostEntry:
    start: date
    end: date
    amount: float
    platform: Optional[str] = None
    id: Optional[Any] = None

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise InvalidCostEntry(f"start {self.start} is after end {self.end}")
        if self.amount < 0:
            raise InvalidCostEntry(f"negative amount {self.amount}")

    @property
    def span_days(self) -> int:
        return span_days(self)

    @property
    def daily_amount(self) -> float:
        return self.amount / self.span_days

    def covers(self, day: date) -> bool:
        return self.start <= day <= self.end

    def to_row(self) -> Dict[str, Any]:
        """REST payload shape of the investments table."""
        return {
            "data_inicio": self.start.isoformat(),
            "data_fim": self.end.isoformat(),
            "valor": self.amount,
            "plataforma": self.platform or "N/A",
        }


def span_days(entry: CostEntry) -> int:
    return max((entry.end - entry.start).days + 1, 1)


def _first(row: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        if row.get(key) not in (None, ""):
            return row[key]
    return None


def cost_entry_from_row(row: Mapping[str, Any]) -> CostEntry:
    start = parse_date(_first(row, ("data_inicio", "start_date", "start")))
    end = parse_date(_first(row, ("data_fim", "end_date", "end")))
    if start is None or end is None:
        raise InvalidCostEntry(f"missing or unparseable dates in {dict(row)!r}")
    platform = _first(row, ("plataforma", "platform"))
    return CostEntry(
        start=start,
        end=end,
        amount=coerce_value(_first(row, ("valor", "amount"))),
        platform=str(platform) if platform is not None else None,
        id=row.get("id"),
    )


def daily_cost(day: date, entries: Sequence[CostEntry]) -> float:
    return float(sum(e.daily_amount for e in entries if e.covers(day)))


def total_cost(rng: DateRange, entries: Sequence[CostEntry]) -> float:
    return float(sum(daily_cost(day, entries) for day in rng.iter_days()))


def daily_cost_series(rng: DateRange, entries: Sequence[CostEntry]) -> pd.Series:
    """Allocated cost for every day of the range (index: Timestamp, name: cost)."""
    index = pd.date_range(rng.start, rng.end, freq="D") if rng.days else pd.DatetimeIndex([])
    series = pd.Series(0.0, index=index, name="cost")
    for entry in entries:
        lo, hi = max(entry.start, rng.start), min(entry.end, rng.end)
        if lo > hi:
            continue
        series.loc[pd.Timestamp(lo) : pd.Timestamp(hi)] += entry.daily_amount
    return series


def entries_in_range(rng: DateRange, entries: Sequence[CostEntry]) -> List[CostEntry]:
    return [e for e in entries if e.start <= rng.end and e.end >= rng.start]


def allocated_in_range(rng: DateRange, entry: CostEntry) -> float:
    lo, hi = max(entry.start, rng.start), min(entry.end, rng.end)
    if lo > hi:
        return 0.0
    return entry.daily_amount * ((hi - lo).days + 1)
