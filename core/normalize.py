"""Raw REST rows -> canonical records.

Rows arrive with whatever columns the current view exposes, values encoded as
numbers, numeric strings or flags ("sim", "x", "ok"...), and dates in more than
one format. Normalization never fails: bad values become 0 and a bad date
becomes today's date (flagged on the record).
"""

from __future__ import annotations

import math
import numbers
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from types import MappingProxyType
from typing import Any, FrozenSet, Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from core.fields import CANONICAL_FIELDS, DATE_KEYS, RESERVED_KEYS

POSITIVE_TOKENS: FrozenSet[str] = frozenset(
    {"sim", "s", "x", "true", "ok", "concluido", "concluído", "pendente", "fila", "acordo"}
)

_DATE_SUFFIX = re.compile(r"[_T ]")
_DATE_PARTS = re.compile(r"[-/.]")
_LEADING_NUMBER = re.compile(r"[+-]?(?:\d+(?:[.,]\d*)?|[.,]\d+)(?:e[+-]?\d+)?")


@dataclass(frozen=True)
class CanonicalRecord:
    date: date
    fields: Mapping[str, float] = field(default_factory=dict)
    blank: FrozenSet[str] = frozenset()
    metrics: Mapping[str, float] = field(default_factory=dict)
    date_defaulted: bool = False


def _is_missing(value: Any) -> bool:
    if value is None or value is pd.NaT:
        return True
    if isinstance(value, float):
        return math.isnan(value)
    if isinstance(value, str):
        return not value.strip()
    return False


def parse_date(value: Any) -> Optional[date]:
    """Parse YYYY-MM-DD, DD/MM/YYYY or either one with a `_`/`T`/space suffix."""
    if _is_missing(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = _DATE_SUFFIX.split(str(value).strip(), maxsplit=1)[0]
    parts = _DATE_PARTS.split(s)
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        return None
    try:
        if len(parts[0]) == 4:
            year, month, day = int(parts[0]), int(parts[1]), int(parts[2])
        else:
            day, month, year = int(parts[0]), int(parts[1]), int(parts[2])
            if len(parts[2]) == 2:
                year += 2000
        return date(year, month, day)
    except ValueError:
        return None


def coerce_value(value: Any) -> float:
    if _is_missing(value):
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, numbers.Number):
        try:
            out = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 0.0
        return out if math.isfinite(out) else 0.0
    if not isinstance(value, str):
        return 0.0
    s = value.strip().lower()
    if s in POSITIVE_TOKENS:
        return 1.0
    match = _LEADING_NUMBER.match(s)
    if not match:
        return 0.0
    out = float(match.group(0).replace(",", "."))
    return out if math.isfinite(out) else 0.0


def first_defined(fields: Mapping[str, float], blank: FrozenSet[str], keys: Iterable[str]) -> Optional[float]:
    """First candidate key present with a defined value; zero counts as defined."""
    for key in keys:
        if key in fields and key not in blank:
            return fields[key]
    return None


def normalize_record(
    raw: Mapping[str, Any],
    date_keys: Sequence[str] = DATE_KEYS,
    today: Optional[date] = None,
) -> CanonicalRecord:
    parsed: Optional[date] = None
    for key in date_keys:
        parsed = parse_date(raw.get(key))
        if parsed is not None:
            break
    defaulted = parsed is None
    if parsed is None:
        parsed = today or date.today()

    skip = RESERVED_KEYS | set(date_keys)
    values = {}
    blank = set()
    for key, value in raw.items():
        key = str(key)
        if key in skip:
            continue
        if _is_missing(value):
            blank.add(key)
        values[key] = coerce_value(value)
    frozen_blank = frozenset(blank)

    metrics = {}
    for canonical in CANONICAL_FIELDS:
        resolved = first_defined(values, frozen_blank, canonical.aliases)
        if resolved is not None:
            metrics[canonical.name] = resolved

    return CanonicalRecord(
        date=parsed,
        fields=MappingProxyType(values),
        blank=frozen_blank,
        metrics=MappingProxyType(metrics),
        date_defaulted=defaulted,
    )


def normalize_records(
    rows: Iterable[Mapping[str, Any]],
    date_keys: Sequence[str] = DATE_KEYS,
    today: Optional[date] = None,
) -> List[CanonicalRecord]:
    return [normalize_record(r, date_keys=date_keys, today=today) for r in rows]


def records_to_frame(records: Sequence[CanonicalRecord], *, canonical: bool = False) -> pd.DataFrame:
    """One row per record: a `date` column plus raw fields (or canonical metrics)."""
    if not records:
        return pd.DataFrame(columns=["date"])
    rows = [{"date": pd.Timestamp(r.date), **(r.metrics if canonical else r.fields)} for r in records]
    frame = pd.DataFrame(rows)
    value_cols = [c for c in frame.columns if c != "date"]
    if value_cols:
        frame[value_cols] = frame[value_cols].apply(pd.to_numeric, errors="coerce").fillna(0.0)
    return frame
