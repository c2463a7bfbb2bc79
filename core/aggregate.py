"""Period aggregation over canonical records.

Fallback-key policy, used everywhere: for each record the first candidate key
that is present with a defined value wins, even when that value is zero. A key
that is missing from the row or was null in the source is skipped.

Every statistic of an empty record set is 0 and every division is guarded.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from core.fields import (
    CANONICAL_FIELDS,
    RATE,
    RATE_COMPONENTS,
    SNAPSHOT,
    humanize_label,
    is_queue_field,
    is_rate_field,
    rate_components,
)
from core.normalize import CanonicalRecord, first_defined

LABEL_TOTAL = "Total no período"
LABEL_RATE = "Média/Ponderada"
LABEL_QUEUE = "Média da Fila"


@dataclass(frozen=True)
class FieldStat:
    key: str
    label: str
    total: float
    today: float
    label_type: str
    is_pct: bool


def safe_div(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


def value_of(record: CanonicalRecord, keys: Sequence[str]) -> Optional[float]:
    return first_defined(record.fields, record.blank, keys)


def has_values(records: Sequence[CanonicalRecord], keys: Sequence[str]) -> bool:
    return any(value_of(r, keys) is not None for r in records)


def sum_field(records: Sequence[CanonicalRecord], keys: Sequence[str]) -> float:
    return float(sum(value_of(r, keys) or 0.0 for r in records))


def _chronological(records: Sequence[CanonicalRecord]) -> List[CanonicalRecord]:
    # sorted() is stable: rows sharing a date keep their fetch order.
    return sorted(records, key=lambda r: r.date)


def _snapshot(
    records: Sequence[CanonicalRecord],
    pick: Callable[[CanonicalRecord], Optional[float]],
    history: Optional[Sequence[CanonicalRecord]],
) -> float:
    if not records:
        return 0.0
    last = _chronological(records)[-1]
    value = pick(last)
    if value:
        return value
    if history is not None:
        for rec in reversed(_chronological(history)):
            if rec.date > last.date:
                continue
            found = pick(rec)
            if found:
                return found
    return value or 0.0


def snapshot_field(
    records: Sequence[CanonicalRecord],
    keys: Sequence[str],
    history: Optional[Sequence[CanonicalRecord]] = None,
) -> float:
    """Current stock: the value in the chronologically last record.

    With `history`, a zero/absent value in that record is replaced by the most
    recent nonzero value found in history on or before its date.
    """
    return _snapshot(records, lambda r: value_of(r, keys), history)


def ratio_rate(
    records: Sequence[CanonicalRecord],
    numerator_keys: Sequence[str],
    denominator_keys: Sequence[str],
) -> float:
    """sum(numerator) / sum(denominator) * 100, 0 when the denominator is 0."""
    return safe_div(sum_field(records, numerator_keys), sum_field(records, denominator_keys)) * 100.0


def mean_field(records: Sequence[CanonicalRecord], key: str) -> float:
    if not records:
        return 0.0
    return sum_field(records, [key]) / len(records)


def rate_strategy(records: Sequence[CanonicalRecord], key: str) -> str:
    """"ratio" when the rate can be rebuilt from raw counts present in the period, else "mean"."""
    components = rate_components(key) if is_rate_field(key) else None
    if components is not None:
        num_keys, den_keys = components
        if has_values(records, num_keys) and has_values(records, den_keys):
            return "ratio"
    return "mean"


def weighted_average(records: Sequence[CanonicalRecord], key: str) -> float:
    if rate_strategy(records, key) == "ratio":
        num_keys, den_keys = rate_components(key)  # type: ignore[misc]
        return ratio_rate(records, num_keys, den_keys)
    return mean_field(records, key)


def summarize(
    filtered: Sequence[CanonicalRecord],
    history: Optional[Sequence[CanonicalRecord]] = None,
) -> Dict[str, float]:
    """Every canonical field evaluated for the period according to its kind.

    Reads `CanonicalRecord.metrics`, where aliases were already resolved.
    """
    out: Dict[str, float] = {}
    for f in CANONICAL_FIELDS:
        if f.kind == SNAPSHOT:
            out[f.name] = _snapshot(filtered, lambda r, n=f.name: r.metrics.get(n), history if f.carry_forward else None)
        elif f.kind != RATE:
            out[f.name] = sum_metric(filtered, f.name)

    for f in CANONICAL_FIELDS:
        if f.kind != RATE:
            continue
        for token, (num, den) in RATE_COMPONENTS.items():
            if token in f.name and _has_metric(filtered, num) and _has_metric(filtered, den):
                out[f.name] = safe_div(out[num], out[den]) * 100.0
                break
        else:
            out[f.name] = safe_div(sum_metric(filtered, f.name), len(filtered))
    return out


def discover_fields(records: Sequence[CanonicalRecord]) -> List[str]:
    keys = set()
    for r in records:
        keys.update(r.fields.keys())
    return sorted(keys)


def field_stats(
    filtered: Sequence[CanonicalRecord],
    history: Optional[Sequence[CanonicalRecord]] = None,
) -> List[FieldStat]:
    """Per-field breakdown over every numeric column seen in the data."""
    known = discover_fields(history if history is not None else filtered)
    ordered = _chronological(filtered)
    last = ordered[-1] if ordered else None

    stats: List[FieldStat] = []
    for key in known:
        is_pct = is_rate_field(key)
        if is_pct:
            total = weighted_average(filtered, key)
            label_type = LABEL_RATE
        elif is_queue_field(key):
            total = mean_field(filtered, key)
            label_type = LABEL_QUEUE
        else:
            total = sum_field(filtered, [key])
            label_type = LABEL_TOTAL
        today = (value_of(last, [key]) or 0.0) if last is not None else 0.0
        stats.append(
            FieldStat(
                key=key,
                label=humanize_label(key),
                total=total,
                today=today,
                label_type=label_type,
                is_pct=is_pct,
            )
        )
    return stats


def sum_metric(records: Sequence[CanonicalRecord], name: str) -> float:
    """Sum of a canonical field (see core.fields)."""
    return float(sum(r.metrics.get(name, 0.0) for r in records))


def _has_metric(records: Sequence[CanonicalRecord], name: str) -> bool:
    return any(name in r.metrics for r in records)

