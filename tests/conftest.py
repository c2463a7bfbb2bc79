"""
Shared fixtures and record factories for the dashboard test suite.

Credentials are removed from the environment so nothing reaches a real
PostgREST endpoint; HTTP is exercised through httpx.MockTransport.
"""

from datetime import date
from typing import Any, Dict, List, Optional

import pytest

from core.config import get_settings
from core.costs import CostEntry
from core.filters import DateRange
from core.kpis import FinancialSettings
from core.normalize import CanonicalRecord, normalize_record

TODAY = date(2024, 3, 31)


def make_record(day: str, **fields: Any) -> CanonicalRecord:
    """Factory: canonical record for `day` (any accepted date format)."""
    return normalize_record({"data_referencia": day, **fields}, today=TODAY)


def make_records(rows: List[Dict[str, Any]]) -> List[CanonicalRecord]:
    return [normalize_record(r, today=TODAY) for r in rows]


def make_range(start: date, end: date, label: str = "Personalizado") -> DateRange:
    return DateRange(start=start, end=end, label=label)


class FakeClient:
    """Duck-typed stand-in for SupabaseClient used by load_dashboard_data."""

    def __init__(
        self,
        rows: List[Dict[str, Any]],
        investments: Optional[List[Dict[str, Any]]] = None,
        ticket: float = 0.0,
    ):
        self.rows = rows
        self.investments = investments or []
        self.ticket = ticket
        self.metrics_source = "dashboard_diario"
        self.calls: List[tuple] = []

    def fetch_metrics(self, start: date, end: date) -> List[Dict[str, Any]]:
        self.calls.append(("fetch_metrics", start, end))
        return list(self.rows)

    def fetch_investments(self) -> List[Dict[str, Any]]:
        return list(self.investments)

    def fetch_financial_settings(self) -> FinancialSettings:
        return FinancialSettings(average_ticket=self.ticket, id=1)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    for var in ("SUPABASE_URL", "SUPABASE_KEY", "HISTORY_LOOKBACK_DAYS", "DEFAULT_RANGE_DAYS"):
        monkeypatch.delenv(var, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def march_rows() -> List[Dict[str, Any]]:
    """Five days of rows mixing legacy and renamed columns and value encodings."""
    return [
        {"id": 1, "data_referencia": "2024-03-01", "aguardando_analise": 10, "contratos_fechados": "sim", "aguardando_documentacao": 4, "telefone": "1199999"},
        {"id": 2, "data_referencia": "02/03/2024", "aguardando_analise": "8", "contratos_fechados": 2, "aguardando_documentacao": 6},
        {"id": 3, "data_referencia": "2024-03-03_09:15:00", "total_leads_dia": 12, "total_contratos_dia": 3, "juridico_protocolados": 1, "posvenda_aguardando_documentacao": 5},
        {"id": 4, "data_referencia": "2024-03-04", "total_leads_dia": 0, "total_contratos_dia": 1, "juridico_protocolados": 2, "posvenda_aguardando_documentacao": 0},
        {"id": 5, "data_referencia": "2024-03-05", "total_leads_dia": 10, "total_contratos_dia": 0, "taxa_conversao_percentual": 4.5, "posvenda_aguardando_documentacao": None},
    ]


@pytest.fixture
def march_investments() -> List[Dict[str, Any]]:
    return [
        {"id": 10, "data_inicio": "2024-03-01", "data_fim": "2024-03-03", "valor": 300, "plataforma": "Meta"},
        {"id": 11, "data_inicio": "2024-03-03", "data_fim": "2024-03-12", "valor": "1000", "plataforma": "Google"},
        {"id": 12, "data_inicio": "2024-03-09", "data_fim": "2024-03-01", "valor": 50},
    ]


@pytest.fixture
def sample_entry() -> CostEntry:
    return CostEntry(start=date(2024, 3, 1), end=date(2024, 3, 3), amount=300.0, platform="Meta")
