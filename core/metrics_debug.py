from __future__ import annotations

from typing import Any, Dict

from core.aggregate import discover_fields
from core.fields import KNOWN_COLUMNS
from core.filters import DateRange


def compute_debug(rng: DateRange, ctx: Dict[str, Any]) -> Dict[str, Any]:
    records = ctx.get("records", [])
    filtered = ctx.get("filtered", [])
    defaulted = [r for r in records if r.date_defaulted]
    columns = discover_fields(records)
    return {
        "range": rng.as_dict(),
        "source": ctx.get("source"),
        "fetched_at": ctx.get("fetched_at"),
        "row_counts": {
            "raw_rows": int(ctx.get("raw_row_count", len(records)) or 0),
            "history_rows": len(ctx.get("history", [])),
            "range_rows": len(filtered),
            "investments": len(ctx.get("investments", [])),
            "investments_in_range": len(ctx.get("investments_in_range", [])),
        },
        "cleaning_checks": {
            # Rows whose date could not be parsed were attributed to the load day.
            "rows_with_defaulted_date": len(defaulted),
            "rejected_investments": ctx.get("rejected_investments", []),
        },
        "columns": columns,
        "unmapped_columns": [c for c in columns if c not in KNOWN_COLUMNS],
        "date_coverage": {
            "first": min(r.date for r in records).isoformat() if records else None,
            "last": max(r.date for r in records).isoformat() if records else None,
        },
    }
