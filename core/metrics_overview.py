from __future__ import annotations

from typing import Any, Dict

import pandas as pd

from core.charts import evolution_chart, funnel_chart, to_vega_spec
from core.data import format_int_br, format_pct
from core.fields import FIELDS_BY_NAME, RATE
from core.filters import DateRange

SECTIONS = {
    "comercial": ["leads", "contratos", "taxa_conversao"],
    "pos_venda": ["reunioes", "pendentes", "agendamento", "documentacao"],
    "operacional": ["producao", "protocolos", "financeiro"],
}

FUNNEL_STAGES = [
    ("leads", "Leads (Total)", "#60a5fa"),
    ("reunioes", "Reuniões", "#818cf8"),
    ("contratos", "Contratos", "#34d399"),
    ("protocolos", "Protocolados", "#fbbf24"),
]


def _tile(name: str, value: float) -> Dict[str, Any]:
    field = FIELDS_BY_NAME[name]
    display = format_pct(value) if field.kind == RATE else format_int_br(value)
    return {"key": name, "label": field.label, "kind": field.kind, "value": value, "display": display}


def compute_overview(rng: DateRange, ctx: Dict[str, Any]) -> Dict[str, Any]:
    summary: Dict[str, float] = ctx.get("summary", {})
    filtered = ctx.get("filtered", [])
    metrics_frame: pd.DataFrame = ctx.get("metrics_frame", pd.DataFrame())

    sections = {
        section: [_tile(name, float(summary.get(name, 0.0))) for name in names]
        for section, names in SECTIONS.items()
    }

    charts: Dict[str, Any] = {}
    if filtered:
        stages = [
            {"name": label, "value": float(summary.get(name, 0.0)), "color": color}
            for name, label, color in FUNNEL_STAGES
        ]
        charts = {
            "evolution": to_vega_spec(evolution_chart(metrics_frame)),
            "funnel": to_vega_spec(funnel_chart(stages)),
        }

    return {
        "range": rng.as_dict(),
        "has_data": bool(filtered),
        "days_with_data": len({r.date for r in filtered}),
        "summary": summary,
        "sections": sections,
        "charts": charts,
    }
