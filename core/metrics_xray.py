from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict

from core.aggregate import field_stats
from core.data import format_int_br, format_pct
from core.filters import DateRange


def compute_xray(rng: DateRange, ctx: Dict[str, Any]) -> Dict[str, Any]:
    """Every numeric column seen in the fetched history, aggregated for the range."""
    stats = field_stats(ctx.get("filtered", []), ctx.get("history", []))
    fields = []
    for stat in stats:
        row = asdict(stat)
        row["display"] = format_pct(stat.total, 1) if stat.is_pct else format_int_br(stat.total)
        fields.append(row)
    return {"range": rng.as_dict(), "field_count": len(fields), "fields": fields}
