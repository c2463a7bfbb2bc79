from __future__ import annotations

import logging
import math
import threading
from collections import OrderedDict
from dataclasses import asdict
from typing import Any, Callable, Dict, Optional, Tuple

import numpy as np
import pandas as pd
from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from api.schemas import DateRangeModel, FinancialSettingsModel, InvestmentModel
from core.config import configure_logging, get_settings
from core.costs import CostEntry, InvalidCostEntry, daily_cost_series
from core.data import (
    DataSourceError,
    SupabaseClient,
    build_cost_entries,
    get_client,
    load_dashboard_data,
    prepare_context,
)
from core.fields import CANONICAL_FIELDS
from core.filters import DEFAULT_PRESET, RANGE_PRESETS, DateRange, normalize_range
from core.kpis import FinancialSettings
from core.metrics_debug import compute_debug
from core.metrics_finance import compute_finance
from core.metrics_overview import compute_overview
from core.metrics_xray import compute_xray

configure_logging()
app = FastAPI(title="Dashboard Diário API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Last successful payload per (page, start, end); served flagged as stale when a refetch fails.
_LAST_GOOD: "OrderedDict[Tuple[str, str, str], Dict[str, Any]]" = OrderedDict()
_LAST_GOOD_MAX = 64
# Sync endpoints run in a threadpool.
_LAST_GOOD_LOCK = threading.Lock()


def _json(data: object, status_code: int = 200) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        ),
    )


def _error(exc: Exception, status_code: int = 500) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc), "type": type(exc).__name__})


def _range_from_model(model: Optional[DateRangeModel]) -> DateRange:
    raw = model.model_dump() if model is not None else {}
    return normalize_range(raw, default_days=get_settings().default_range_days)


def _load_context(rng: DateRange) -> Dict[str, Any]:
    client = get_client()
    try:
        data_ctx = load_dashboard_data(rng, client)
    finally:
        if client is not None:
            client.close()
    return prepare_context(rng, data_ctx)


def _remember(key: Tuple[str, str, str], payload: Dict[str, Any]) -> None:
    with _LAST_GOOD_LOCK:
        _LAST_GOOD[key] = payload
        _LAST_GOOD.move_to_end(key)
        while len(_LAST_GOOD) > _LAST_GOOD_MAX:
            _LAST_GOOD.popitem(last=False)


def _recall(key: Tuple[str, str, str]) -> Optional[Dict[str, Any]]:
    with _LAST_GOOD_LOCK:
        return _LAST_GOOD.get(key)


def _serve(page: str, model: Optional[DateRangeModel], compute: Callable[[DateRange, Dict[str, Any]], Dict[str, Any]]) -> JSONResponse:
    rng = _range_from_model(model)
    key = (page, rng.start.isoformat(), rng.end.isoformat())
    try:
        payload = compute(rng, _load_context(rng))
    except DataSourceError as exc:
        logger.exception("%s failed", page)
        cached = _recall(key)
        if cached is not None:
            return _json({**cached, "stale": True, "error": str(exc)})
        return _error(exc, status_code=502)
    except Exception as exc:
        logger.exception("%s failed", page)
        return _error(exc)
    _remember(key, payload)
    return _json({**payload, "stale": False})


def _require_client() -> SupabaseClient:
    client = get_client()
    if client is None:
        raise DataSourceError("No data source configured (set SUPABASE_URL and SUPABASE_KEY)", status_code=409)
    return client


def _entry_from_model(model: InvestmentModel) -> CostEntry:
    return CostEntry(start=model.start_date, end=model.end_date, amount=model.amount, platform=model.platform)


@app.get("/meta/presets")
def meta_presets():
    return _json({"presets": list(RANGE_PRESETS), "default": DEFAULT_PRESET})


@app.get("/meta/fields")
def meta_fields():
    fields = [
        {"name": f.name, "label": f.label, "kind": f.kind, "aliases": list(f.aliases), "carry_forward": f.carry_forward}
        for f in CANONICAL_FIELDS
    ]
    return _json({"fields": fields})


@app.post("/overview")
def overview(period: Optional[DateRangeModel] = None):
    return _serve("overview", period, compute_overview)


@app.post("/finance")
def finance(period: Optional[DateRangeModel] = None):
    return _serve("finance", period, compute_finance)


@app.post("/xray")
def xray(period: Optional[DateRangeModel] = None):
    return _serve("xray", period, compute_xray)


@app.post("/debug")
def debug(period: Optional[DateRangeModel] = None):
    return _serve("debug", period, compute_debug)


@app.get("/settings")
def read_settings():
    client = get_client()
    if client is None:
        return _json({**asdict(FinancialSettings()), "configured": False})
    try:
        with client:
            return _json({**asdict(client.fetch_financial_settings()), "configured": True})
    except Exception as exc:
        logger.exception("read_settings failed")
        return _error(exc)


@app.put("/settings")
def write_settings(body: FinancialSettingsModel):
    try:
        with _require_client() as client:
            saved = client.save_financial_settings(FinancialSettings(average_ticket=body.average_ticket))
        return _json(asdict(saved))
    except DataSourceError as exc:
        logger.exception("write_settings failed")
        return _error(exc, status_code=exc.status_code or 500)
    except Exception as exc:
        logger.exception("write_settings failed")
        return _error(exc)


@app.get("/investments")
def list_investments():
    client = get_client()
    if client is None:
        return _json({"investments": [], "rejected": []})
    try:
        with client:
            entries, rejected = build_cost_entries(client.fetch_investments())
        return _json({"investments": [{**asdict(e), "span_days": e.span_days} for e in entries], "rejected": rejected})
    except Exception as exc:
        logger.exception("list_investments failed")
        return _error(exc)


@app.post("/investments")
def create_investment(body: InvestmentModel):
    try:
        entry = _entry_from_model(body)
        with _require_client() as client:
            client.add_investment(entry)
        return _json(asdict(entry), status_code=201)
    except InvalidCostEntry as exc:
        return _error(exc, status_code=422)
    except DataSourceError as exc:
        logger.exception("create_investment failed")
        return _error(exc, status_code=exc.status_code or 500)
    except Exception as exc:
        logger.exception("create_investment failed")
        return _error(exc)


@app.patch("/investments/{investment_id}")
def edit_investment(investment_id: int, body: InvestmentModel):
    try:
        entry = _entry_from_model(body)
        with _require_client() as client:
            client.update_investment(investment_id, entry)
        return _json({**asdict(entry), "id": investment_id})
    except InvalidCostEntry as exc:
        return _error(exc, status_code=422)
    except DataSourceError as exc:
        logger.exception("edit_investment failed")
        return _error(exc, status_code=exc.status_code or 500)
    except Exception as exc:
        logger.exception("edit_investment failed")
        return _error(exc)


@app.delete("/investments/{investment_id}")
def remove_investment(investment_id: int):
    try:
        with _require_client() as client:
            client.delete_investment(investment_id)
        return _json({"deleted": investment_id})
    except DataSourceError as exc:
        logger.exception("remove_investment failed")
        return _error(exc, status_code=exc.status_code or 500)
    except Exception as exc:
        logger.exception("remove_investment failed")
        return _error(exc)


@app.post("/export/{page}")
def export_page(page: str, period: Optional[DateRangeModel] = None):
    rng = _range_from_model(period)
    try:
        ctx = _load_context(rng)
    except DataSourceError as exc:
        logger.exception("export %s failed", page)
        return _error(exc, status_code=502)

    filename = f"{page}_{rng.start:%Y%m%d}_{rng.end:%Y%m%d}.csv"
    if page == "overview":
        export_df = ctx.get("metrics_frame")
    elif page in {"xray", "raw"}:
        export_df = ctx.get("frame")
    elif page == "finance":
        export_df = daily_cost_series(rng, ctx.get("investments", [])).rename_axis("date").reset_index()
    else:
        export_df = pd.DataFrame()

    if export_df is None or not hasattr(export_df, "to_csv"):
        export_df = pd.DataFrame()
    csv_bytes = export_df.to_csv(index=False).encode("utf-8")
    return Response(content=csv_bytes, media_type="text/csv", headers={"Content-Disposition": f"attachment; filename={filename}"})