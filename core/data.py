from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import httpx
import numpy as np
import pandas as pd

from core.aggregate import summarize
from core.config import Settings, get_settings
from core.costs import CostEntry, InvalidCostEntry, cost_entry_from_row, entries_in_range
from core.filters import DateRange, filter_by_range, history_until
from core.kpis import FinancialSettings
from core.normalize import normalize_records, records_to_frame

logger = logging.getLogger(__name__)

DEMO_SOURCE = "demo"
DEMO_SEED = 20240301


class DataSourceError(Exception):
    """Raised when the REST data source rejects or fails a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TableNotFoundError(DataSourceError):
    pass


def _raise_for_error(response: httpx.Response, context: str) -> None:
    if response.is_success:
        return
    detail = ""
    try:
        payload = response.json()
        if isinstance(payload, dict):
            detail = payload.get("message") or payload.get("hint") or payload.get("details") or ""
    except ValueError:
        pass
    detail = str(detail or response.reason_phrase or "network or CORS error")
    if response.status_code == 404 or "Could not find the table" in detail:
        raise TableNotFoundError(context, status_code=response.status_code)
    raise DataSourceError(f"{context}: {detail}", status_code=response.status_code)


class SupabaseClient:
    """Thin PostgREST client for the metrics view, investments and settings tables."""

    def __init__(
        self,
        url: str,
        key: str,
        *,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.metrics_source: Optional[str] = None
        self._http = httpx.Client(
            base_url=url.rstrip("/") + "/rest/v1",
            timeout=self.settings.request_timeout,
            transport=transport,
            headers={
                "apikey": key,
                "Authorization": f"Bearer {key}",
                "Content-Type": "application/json",
            },
        )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **kwargs: Any) -> "SupabaseClient":
        settings = settings or get_settings()
        return cls(settings.supabase_url, settings.supabase_key, settings=settings, **kwargs)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "SupabaseClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _request(
        self,
        method: str,
        table: str,
        *,
        context: str,
        params: Any = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> httpx.Response:
        headers = {"Prefer": prefer} if prefer else None
        try:
            response = self._http.request(method, f"/{table}", params=params, json=json, headers=headers)
        except httpx.HTTPError as exc:
            raise DataSourceError(f"{context}: {exc}") from exc
        _raise_for_error(response, context)
        return response

    # ---------------- Metrics ----------------
    def _fetch_metrics_from(self, table: str, start: date, end: date) -> List[Dict[str, Any]]:
        col = self.settings.metrics_date_column
        params = [
            ("select", "*"),
            (col, f"gte.{start.isoformat()}"),
            # Exclusive next-day bound: timestamp columns keep rows from later on `end`.
            (col, f"lt.{(end + timedelta(days=1)).isoformat()}"),
            ("order", f"{col}.asc"),
        ]
        response = self._request("GET", table, params=params, context=f"Erro na tabela '{table}'")
        self.metrics_source = table
        return list(response.json())

    def fetch_metrics(self, start: date, end: date) -> List[Dict[str, Any]]:
        primary = self.settings.metrics_table
        try:
            return self._fetch_metrics_from(primary, start, end)
        except TableNotFoundError:
            fallback = self.settings.metrics_fallback_table
            logger.warning("Metrics table %r not found, falling back to %r", primary, fallback)
            return self._fetch_metrics_from(fallback, start, end)

    # ---------------- Financial settings ----------------
    def _latest_settings_row(self, select: str = "*") -> Optional[Dict[str, Any]]:
        response = self._request(
            "GET",
            self.settings.settings_table,
            params={"select": select, "limit": 1, "order": "id.desc"},
            context="Erro ao ler configurações financeiras",
        )
        data = response.json()
        return data[0] if data else None

    def fetch_financial_settings(self) -> FinancialSettings:
        try:
            return FinancialSettings.from_row(self._latest_settings_row())
        except TableNotFoundError:
            logger.warning("Settings table %r not found, using defaults", self.settings.settings_table)
            return FinancialSettings()

    def save_financial_settings(self, settings: FinancialSettings) -> FinancialSettings:
        target_id = settings.id
        if target_id is None:
            latest = self._latest_settings_row(select="id")
            target_id = latest.get("id") if latest else None

        body = {"average_ticket": settings.average_ticket}
        table = self.settings.settings_table
        if target_id is not None:
            self._request(
                "PATCH", table, params={"id": f"eq.{target_id}"}, json=body, prefer="return=minimal", context="Erro ao salvar ticket"
            )
        else:
            self._request("POST", table, json=body, prefer="return=minimal", context="Erro ao salvar ticket")
        return FinancialSettings(average_ticket=settings.average_ticket, id=target_id)

    # ---------------- Investments ----------------
    def fetch_investments(self) -> List[Dict[str, Any]]:
        response = self._request(
            "GET",
            self.settings.investments_table,
            params={"select": "*", "order": "data_inicio.desc"},
            context="Erro ao ler investimentos",
        )
        return list(response.json())

    def add_investment(self, entry: CostEntry) -> None:
        self._request(
            "POST",
            self.settings.investments_table,
            json=entry.to_row(),
            prefer="return=minimal",
            context="Erro ao salvar investimento",
        )

    def update_investment(self, investment_id: Any, entry: CostEntry) -> None:
        self._request(
            "PATCH",
            self.settings.investments_table,
            params={"id": f"eq.{investment_id}"},
            json=entry.to_row(),
            prefer="return=minimal",
            context="Erro ao atualizar investimento",
        )

    def delete_investment(self, investment_id: Any) -> None:
        response = self._request(
            "DELETE",
            self.settings.investments_table,
            params={"id": f"eq.{investment_id}"},
            prefer="return=representation",
            context="Falha na exclusão",
        )
        data = response.json() if response.content else []
        if isinstance(data, list) and not data:
            # PostgREST answers 200 [] when a row-level policy filters the DELETE out.
            raise DataSourceError(f"Investment {investment_id} was not removed; check the table's DELETE policy")


def get_client(settings: Optional[Settings] = None) -> Optional[SupabaseClient]:
    settings = settings or get_settings()
    if not settings.has_credentials:
        return None
    return SupabaseClient.from_settings(settings)


# ---------------- Demo data ----------------
def demo_rows(days: int = 30, *, end: Optional[date] = None, seed: Optional[int] = None) -> List[Dict[str, Any]]:
    """Random daily rows in the legacy column layout, one per day ending at `end`."""
    gen = np.random.default_rng(seed)
    end = end or date.today()
    rows: List[Dict[str, Any]] = []
    for i in range(days):
        day = end - timedelta(days=days - 1 - i)
        rows.append(
            {
                "data_referencia": day.isoformat(),
                "taxa_conversao_percentual": round(float(gen.uniform(2.0, 7.0)), 2),
                "aguardando_analise": int(gen.integers(1, 11)),
                "contratos_fechados": int(gen.integers(0, 3)),
                "clientes_pendentes_total": int(gen.integers(0, 5)),
                "aguardando_agendamento": int(gen.integers(0, 4)),
                "aguardando_documentacao": int(gen.integers(0, 6)),
            }
        )
    return rows


# ---------------- Public API (Streamlit + FastAPI) ----------------
def build_cost_entries(rows: Sequence[Mapping[str, Any]]) -> Tuple[List[CostEntry], List[Dict[str, Any]]]:
    entries: List[CostEntry] = []
    rejected: List[Dict[str, Any]] = []
    for row in rows:
        try:
            entries.append(cost_entry_from_row(row))
        except InvalidCostEntry as exc:
            logger.warning("Skipping investment %s: %s", row.get("id"), exc)
            rejected.append({"id": row.get("id"), "reason": str(exc)})
    return entries, rejected


def load_dashboard_data(
    rng: DateRange,
    client: Optional[SupabaseClient] = None,
    *,
    settings: Optional[Settings] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Fetch fresh rows for the range (plus look-back history) and normalize them.

    Without a client the dashboard runs on demo rows.
    """
    settings = settings or get_settings()
    fetch_start = rng.start - timedelta(days=settings.history_lookback_days)

    if client is None:
        rows = demo_rows(days=(rng.end - fetch_start).days + 1, end=rng.end, seed=DEMO_SEED)
        investment_rows: List[Dict[str, Any]] = []
        financial = FinancialSettings()
        source = DEMO_SOURCE
    else:
        rows = client.fetch_metrics(fetch_start, rng.end)
        investment_rows = client.fetch_investments()
        financial = client.fetch_financial_settings()
        source = client.metrics_source or settings.metrics_table

    records = normalize_records(rows, today=today)
    investments, rejected = build_cost_entries(investment_rows)
    logger.info("Loaded %d rows from %s (%s..%s), %d investments", len(rows), source, fetch_start, rng.end, len(investments))
    return {
        "source": source,
        "fetched_at": datetime.now(timezone.utc).isoformat(),
        "fetch_start": fetch_start,
        "raw_row_count": len(rows),
        "records": records,
        "investments": investments,
        "rejected_investments": rejected,
        "financial_settings": financial,
    }


def prepare_context(rng: DateRange, data_ctx: Dict[str, Any]) -> Dict[str, Any]:
    records = data_ctx.get("records", []) or []
    history = history_until(records, rng)
    filtered = filter_by_range(history, rng)
    investments: List[CostEntry] = data_ctx.get("investments", []) or []

    return {
        "range": rng,
        "source": data_ctx.get("source"),
        "fetched_at": data_ctx.get("fetched_at"),
        "raw_row_count": data_ctx.get("raw_row_count", len(records)),
        "records": records,
        "history": history,
        "filtered": filtered,
        "frame": records_to_frame(filtered),
        "metrics_frame": records_to_frame(filtered, canonical=True),
        "summary": summarize(filtered, history),
        "investments": investments,
        "investments_in_range": entries_in_range(rng, investments),
        "rejected_investments": data_ctx.get("rejected_investments", []) or [],
        "financial_settings": data_ctx.get("financial_settings") or FinancialSettings(),
    }


# ---------------- Formatting ----------------
def round_half_up(value: object, ndigits: int = 0) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    q = Decimal(10) ** -ndigits
    return float(Decimal(str(value)).quantize(q, rounding=ROUND_HALF_UP))


def _swap_separators(s: str) -> str:
    return s.replace(",", "_").replace(".", ",").replace("_", ".")


def format_brl(value: object) -> str:
    """1234.5 -> 'R$ 1.234,50'."""
    rounded = round_half_up(value, 2)
    if rounded is None:
        return "R$ 0,00"
    return f"R$ {_swap_separators(f'{rounded:,.2f}')}"


def format_int_br(value: object) -> str:
    rounded = round_half_up(value, 0)
    if rounded is None:
        return "0"
    return _swap_separators(f"{rounded:,.0f}")


def format_pct(value: object, decimals: int = 2) -> str:
    rounded = round_half_up(value, decimals)
    if rounded is None:
        return f"{0:.{decimals}f}%"
    return f"{rounded:.{decimals}f}%"
