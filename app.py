from contextlib import contextmanager
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

import altair as alt
import pandas as pd
import streamlit as st

from core.config import configure_logging, get_settings
from core.costs import CostEntry, InvalidCostEntry, daily_cost_series
from core.data import (
    DataSourceError,
    format_brl,
    format_int_br,
    get_client,
    load_dashboard_data,
    prepare_context,
)
from core.filters import CUSTOM_LABEL, DEFAULT_PRESET, RANGE_PRESETS, DateRange, make_range, preset_range
from core.kpis import FinancialSettings
from core.metrics_debug import compute_debug
from core.metrics_finance import compute_finance
from core.metrics_overview import compute_overview
from core.metrics_xray import compute_xray

alt.data_transformers.disable_max_rows()
configure_logging()
settings = get_settings()


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .app-top-bar {padding: 6px 0 4px;border-bottom: 1px solid #1e293b;margin-bottom: 10px;}
        .app-top-bar .breadcrumb {color: #64748b;font-size: 0.9rem;margin-bottom: 2px;}
        .app-top-bar .page-title {font-size: 1.4rem;font-weight: 700;}
        .section-title {color: #64748b;font-size: 0.7rem;font-weight: 700;letter-spacing: 0.2em;
                        text-transform: uppercase;margin: 18px 0 8px;}
        .card {border: 1px solid #1e293b;border-radius: 12px;padding: 16px;margin-bottom: 12px;}
        .card-title {font-weight: 600;font-size: 1.0rem;margin-bottom: 8px;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #0f172a;border: 1px solid #1e293b;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #94a3b8;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str):
    container = st.container()
    container.markdown(f"<div class='card-title'>{title}</div>", unsafe_allow_html=True)
    body = container.container()
    with body:
        yield body


def render_page_header(title: str, breadcrumb: str, rng: DateRange, source: Optional[str], export_df: Optional[pd.DataFrame] = None, export_name: str = "export.csv"):
    inject_base_styles()
    c1, c2 = st.columns([7, 3])
    with c1:
        st.markdown(
            f"<div class='app-top-bar'><div class='breadcrumb'>{breadcrumb}</div><div class='page-title'>{title}</div></div>",
            unsafe_allow_html=True,
        )
    with c2:
        btn_cols = st.columns(2)
        if btn_cols[0].button("Atualizar"):
            st.rerun()
        if export_df is not None and not export_df.empty:
            btn_cols[1].download_button(
                "Exportar CSV",
                data=export_df.to_csv(index=False).encode("utf-8"),
                file_name=export_name,
                mime="text/csv",
            )
    chips = [f"Período: {rng.start:%d/%m/%Y} – {rng.end:%d/%m/%Y}", f"Filtro: {rng.label}", f"Fonte: {source or 'n/d'}"]
    st.markdown("<div class='chip-row'>" + "".join(f"<span class='chip'>{c}</span>" for c in chips) + "</div>", unsafe_allow_html=True)


def render_tiles(tiles: List[Dict[str, Any]]):
    cols = st.columns(len(tiles))
    for col, tile in zip(cols, tiles):
        col.metric(tile["label"], tile["display"])


# ---------- UI setup ----------
st.set_page_config(page_title="Dashboard Diário", layout="wide")
inject_base_styles()
st.title("Dashboard Diário")

with st.sidebar:
    st.markdown("### Navegar")
    page = st.radio("Navegar", ["Visão Estratégica", "Raio-X Completo", "Investimentos & Ticket", "Qualidade de Dados"], index=0)

    st.markdown("---")
    st.markdown("### Período")
    options = list(RANGE_PRESETS) + [CUSTOM_LABEL]
    preset = st.radio("Período", options, index=options.index(DEFAULT_PRESET), horizontal=True, label_visibility="collapsed")
    if preset == CUSTOM_LABEL:
        today = date.today()
        picked = st.date_input("Intervalo", value=(today - timedelta(days=settings.default_range_days - 1), today))
        if isinstance(picked, (list, tuple)) and len(picked) == 2:
            rng = make_range(picked[0], picked[1], label=CUSTOM_LABEL)
        else:
            rng = preset_range(DEFAULT_PRESET)
    else:
        rng = preset_range(preset)

    st.markdown("---")
    # Cosmetic reveal only: anyone with access to the app can toggle it.
    show_financials = st.checkbox("Mostrar valores financeiros", value=False)

client = get_client(settings)
if client is None:
    st.info("Sem credenciais configuradas (SUPABASE_URL / SUPABASE_KEY): exibindo dados de demonstração.")

try:
    data_ctx = load_dashboard_data(rng, client, settings=settings)
    ctx = prepare_context(rng, data_ctx)
    st.session_state["last_good"] = ctx
except DataSourceError as exc:
    last_good = st.session_state.get("last_good")
    if last_good is None:
        st.error(f"Erro ao carregar dados: {exc}")
        st.stop()
    st.warning(f"Erro ao carregar dados ({exc}). Exibindo o último resultado carregado com sucesso.")
    ctx = last_good
    rng = ctx["range"]
finally:
    if client is not None:
        client.close()


# ----- Page renderers -----
def render_strategic_page():
    payload = compute_overview(rng, ctx)
    render_page_header("Visão Estratégica", "Dashboard / Visão Estratégica", rng, ctx.get("source"), export_df=ctx.get("metrics_frame"), export_name="visao_estrategica.csv")
    if not payload["has_data"]:
        st.info("Sem dados para este período.")

    for title, section in [("Comercial", "comercial"), ("Pós-venda (estoque líquido)", "pos_venda"), ("Operacional", "operacional")]:
        st.markdown(f"<div class='section-title'>{title}</div>", unsafe_allow_html=True)
        render_tiles(payload["sections"][section])

    charts = payload.get("charts") or {}
    if charts:
        chart_cols = st.columns(2)
        with chart_cols[0]:
            with card("Evolução Diária"):
                st.vega_lite_chart(charts["evolution"], use_container_width=True)
        with chart_cols[1]:
            with card("Funil de Eficiência"):
                st.vega_lite_chart(charts["funnel"], use_container_width=True)

    finance = compute_finance(rng, ctx)
    st.markdown("<div class='section-title'>Financeiro</div>", unsafe_allow_html=True)
    cols = st.columns(3)
    hidden = "••••"
    cols[0].metric("Investimento (est.)", finance["display"]["estimated_cost"] if show_financials else hidden, help="Investimentos pró-rateados por dia no período.")
    cols[1].metric("CPA (custo/contrato)", finance["display"]["cpa"] if show_financials else hidden)
    cols[2].metric(
        "ROI estimado",
        finance["display"]["roi"] if show_financials else hidden,
        help=f"Ticket médio: {finance['display']['average_ticket']}",
    )


def render_xray_page():
    payload = compute_xray(rng, ctx)
    render_page_header("Raio-X Completo", "Dashboard / Raio-X", rng, ctx.get("source"), export_df=ctx.get("frame"), export_name="raio_x.csv")
    if not payload["fields"]:
        st.info("Nenhum campo numérico encontrado.")
        return
    per_row = 4
    fields = payload["fields"]
    for i in range(0, len(fields), per_row):
        cols = st.columns(per_row)
        for col, item in zip(cols, fields[i : i + per_row]):
            col.metric(item["label"], item["display"], delta=f"Hoje: {format_int_br(item['today'])}", delta_color="off", help=item["label_type"])


def render_investments_page():
    finance = compute_finance(rng, ctx)
    render_page_header("Investimentos & Ticket", "Dashboard / Investimentos", rng, ctx.get("source"))
    financial: FinancialSettings = ctx.get("financial_settings") or FinancialSettings()

    with card("Ticket médio"):
        ticket = st.number_input("Ticket médio (R$)", min_value=0.0, value=float(financial.average_ticket), step=100.0)
        if st.button("Salvar ticket", disabled=not settings.has_credentials):
            try:
                with get_client(settings) as c:
                    c.save_financial_settings(FinancialSettings(average_ticket=ticket, id=financial.id))
                st.success("Ticket salvo.")
            except DataSourceError as exc:
                st.error(str(exc))

    with card("Novo investimento"):
        with st.form("new_investment", clear_on_submit=True):
            f1, f2, f3, f4 = st.columns(4)
            start = f1.date_input("Início", value=rng.start)
            end = f2.date_input("Fim", value=rng.end)
            amount = f3.number_input("Valor (R$)", min_value=0.0, step=100.0)
            platform = f4.text_input("Plataforma", "")
            submitted = st.form_submit_button("Adicionar", disabled=not settings.has_credentials)
        if submitted:
            try:
                entry = CostEntry(start=start, end=end, amount=amount, platform=platform or None)
                with get_client(settings) as c:
                    c.add_investment(entry)
                st.success("Investimento salvo.")
            except InvalidCostEntry as exc:
                st.error(f"Investimento inválido: {exc}")
            except DataSourceError as exc:
                st.error(str(exc))

    with card("Investimentos ativos no período"):
        if not finance["investments"]:
            st.info("Nenhum investimento no período.")
        else:
            table = pd.DataFrame(finance["investments"])
            if not show_financials:
                table = table.drop(columns=["amount", "daily_amount", "allocated_in_range"])
            st.dataframe(table, hide_index=True, use_container_width=True)
            if show_financials and finance["charts"]["daily_cost"]:
                st.vega_lite_chart(finance["charts"]["daily_cost"], use_container_width=True)
            to_delete = st.selectbox("Excluir investimento", [""] + [str(r["id"]) for r in finance["investments"] if r["id"] is not None])
            if to_delete and st.button("Excluir", disabled=not settings.has_credentials):
                try:
                    with get_client(settings) as c:
                        c.delete_investment(to_delete)
                    st.success("Investimento excluído.")
                except DataSourceError as exc:
                    st.error(str(exc))


def render_debug_page():
    payload = compute_debug(rng, ctx)
    render_page_header("Qualidade de Dados", "Dashboard / Qualidade de Dados", rng, ctx.get("source"))
    st.json(payload["row_counts"])
    checks = payload["cleaning_checks"]
    if checks["rows_with_defaulted_date"]:
        st.warning(f"{checks['rows_with_defaulted_date']} linha(s) sem data válida foram atribuídas ao dia da carga.")
    if checks["rejected_investments"]:
        st.warning("Investimentos ignorados:")
        st.dataframe(pd.DataFrame(checks["rejected_investments"]), hide_index=True, use_container_width=True)
    with card("Colunas fora do mapa de aliases"):
        st.write(payload["unmapped_columns"] or "Nenhuma")
    if show_financials:
        with card("Custo diário alocado"):
            series = daily_cost_series(rng, ctx.get("investments", []))
            st.dataframe(series.rename("custo").to_frame().assign(custo=lambda d: d["custo"].map(format_brl)), use_container_width=True)


if page == "Visão Estratégica":
    render_strategic_page()
elif page == "Raio-X Completo":
    render_xray_page()
elif page == "Investimentos & Ticket":
    render_investments_page()
else:
    render_debug_page()
