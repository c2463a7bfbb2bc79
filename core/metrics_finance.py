from __future__ import annotations

from typing import Any, Dict, List

from core.charts import daily_cost_chart, to_vega_spec
from core.costs import CostEntry, allocated_in_range, daily_cost_series, total_cost
from core.data import format_brl, format_pct
from core.filters import DateRange
from core.kpis import FinancialSettings, compute_kpis


def compute_finance(rng: DateRange, ctx: Dict[str, Any]) -> Dict[str, Any]:
    summary: Dict[str, float] = ctx.get("summary", {})
    investments: List[CostEntry] = ctx.get("investments", [])
    active: List[CostEntry] = ctx.get("investments_in_range", [])
    financial: FinancialSettings = ctx.get("financial_settings") or FinancialSettings()

    contracts = float(summary.get("contratos", 0.0))
    protocols = float(summary.get("protocolos", 0.0))
    cost = total_cost(rng, investments)
    kpis = compute_kpis(contracts, cost, protocols, financial.average_ticket)

    active_rows = [
        {
            "id": e.id,
            "platform": e.platform or "N/A",
            "start": e.start.isoformat(),
            "end": e.end.isoformat(),
            "amount": e.amount,
            "daily_amount": e.daily_amount,
            "allocated_in_range": allocated_in_range(rng, e),
        }
        for e in sorted(active, key=lambda e: e.start, reverse=True)
    ]

    daily_chart = None
    if active:
        daily_chart = to_vega_spec(daily_cost_chart(daily_cost_series(rng, active)))

    return {
        "range": rng.as_dict(),
        "average_ticket": financial.average_ticket,
        "contracts": contracts,
        "protocols": protocols,
        "estimated_cost": cost,
        "cpa": kpis.cpa,
        "revenue": kpis.revenue,
        "roi": kpis.roi,
        "cost_per_protocol": kpis.cost_per_protocol,
        "display": {
            "estimated_cost": format_brl(cost),
            "cpa": format_brl(kpis.cpa),
            "revenue": format_brl(kpis.revenue),
            "roi": format_pct(kpis.roi, 1),
            "cost_per_protocol": format_brl(kpis.cost_per_protocol),
            "average_ticket": format_brl(financial.average_ticket),
        },
        "investments": active_rows,
        "charts": {"daily_cost": daily_chart},
    }
