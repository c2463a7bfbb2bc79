from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from core.normalize import CanonicalRecord, parse_date

CUSTOM_LABEL = "Personalizado"
RANGE_PRESETS: Dict[str, int] = {"7 Dias": 7, "15 Dias": 15, "30 Dias": 30}
DEFAULT_PRESET = "30 Dias"


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date
    label: str = CUSTOM_LABEL

    @property
    def days(self) -> int:
        return max((self.end - self.start).days + 1, 0)

    def iter_days(self):
        for offset in range(self.days):
            yield self.start + timedelta(days=offset)

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def as_dict(self) -> Dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat(), "label": self.label}


def _as_day(value: Any) -> Optional[date]:
    # Day granularity only; a time of day on a bound would shift the filter.
    if isinstance(value, datetime):
        return value.date()
    return parse_date(value)


def preset_range(label: str, *, today: Optional[date] = None) -> DateRange:
    days = RANGE_PRESETS.get(label, RANGE_PRESETS[DEFAULT_PRESET])
    end = today or date.today()
    return DateRange(start=end - timedelta(days=days - 1), end=end, label=label if label in RANGE_PRESETS else DEFAULT_PRESET)


def make_range(start: Any, end: Any, label: str = CUSTOM_LABEL) -> DateRange:
    s, e = _as_day(start), _as_day(end)
    if s is None or e is None:
        raise ValueError(f"Invalid date range: {start!r} .. {end!r}")
    if s > e:
        s, e = e, s
    return DateRange(start=s, end=e, label=label)


def normalize_range(raw: Optional[dict], *, today: Optional[date] = None, default_days: int = 30) -> DateRange:
    """Build a DateRange from loose request input.

    A known preset label wins; otherwise both bounds must parse, else the
    default trailing window ending today is used.
    """
    raw = raw or {}
    label = str(raw.get("label") or "").strip()
    if label in RANGE_PRESETS and not (raw.get("start") or raw.get("end")):
        return preset_range(label, today=today)

    s, e = _as_day(raw.get("start")), _as_day(raw.get("end"))
    if s is None or e is None:
        end = today or date.today()
        try:
            days = max(1, int(default_days))
        except (TypeError, ValueError):
            days = 30
        default_label = f"{days} Dias"
        return DateRange(start=end - timedelta(days=days - 1), end=end, label=default_label)
    return make_range(s, e, label=label or CUSTOM_LABEL)


def filter_by_range(records: Sequence[CanonicalRecord], rng: DateRange) -> List[CanonicalRecord]:
    return [r for r in records if rng.start <= r.date <= rng.end]


def history_until(records: Sequence[CanonicalRecord], rng: DateRange) -> List[CanonicalRecord]:
    """Records up to the end of the range, sorted by date (stable)."""
    return sorted((r for r in records if r.date <= rng.end), key=lambda r: r.date)
