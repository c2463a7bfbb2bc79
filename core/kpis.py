from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from core.normalize import coerce_value


@dataclass
class FinancialSettings:
    average_ticket: float = 0.0
    id: Optional[int] = None

    @classmethod
    def from_row(cls, row: Optional[Mapping[str, Any]]) -> "FinancialSettings":
        if not row:
            return cls()
        raw_id = row.get("id")
        return cls(average_ticket=coerce_value(row.get("average_ticket")), id=int(raw_id) if raw_id is not None else None)


@dataclass(frozen=True)
class Kpis:
    cpa: float
    revenue: float
    roi: float
    cost_per_protocol: float


def _finite(value: float) -> float:
    return value if math.isfinite(value) else 0.0


def compute_kpis(contracts: float, total_cost: float, protocols: float, ticket: float) -> Kpis:
    contracts, total_cost, protocols, ticket = (_finite(float(v)) for v in (contracts, total_cost, protocols, ticket))
    revenue = contracts * ticket
    cpa = total_cost / contracts if contracts > 0 else 0.0
    roi = (revenue - total_cost) / total_cost * 100.0 if total_cost > 0 else 0.0
    cost_per_protocol = total_cost / protocols if protocols > 0 else 0.0
    return Kpis(cpa=_finite(cpa), revenue=_finite(revenue), roi=_finite(roi), cost_per_protocol=_finite(cost_per_protocol))
