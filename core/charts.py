from __future__ import annotations

from typing import Any, Dict, List

import altair as alt
import pandas as pd

alt.data_transformers.disable_max_rows()

EVOLUTION_SERIES = {"leads": "Entrada Leads", "contratos": "Contratos", "protocolos": "Protocolados"}
EVOLUTION_COLORS = ["#60a5fa", "#34d399", "#fbbf24"]


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def evolution_chart(metrics_frame: pd.DataFrame) -> alt.Chart:
    """Daily leads / contracts / filings lines from a canonical metrics frame."""
    frame = metrics_frame.copy()
    for col in EVOLUTION_SERIES:
        if col not in frame.columns:
            frame[col] = 0.0
    long = (
        frame[["date", *EVOLUTION_SERIES]]
        .groupby("date", as_index=False)
        .sum()
        .melt(id_vars=["date"], var_name="serie", value_name="valor")
        .assign(serie=lambda d: d["serie"].map(EVOLUTION_SERIES))
    )
    return (
        alt.Chart(long)
        .mark_line(point=True, strokeWidth=3)
        .encode(
            x=alt.X("date:T", title="Data", axis=alt.Axis(format="%d %b")),
            y=alt.Y("valor:Q", title=None),
            color=alt.Color(
                "serie:N",
                title=None,
                scale=alt.Scale(domain=list(EVOLUTION_SERIES.values()), range=EVOLUTION_COLORS),
            ),
            tooltip=[alt.Tooltip("date:T", format="%d/%m/%Y"), "serie", alt.Tooltip("valor:Q", format=",.0f")],
        )
        .properties(height=300)
    )


def funnel_chart(stages: List[Dict[str, Any]]) -> alt.Chart:
    """Horizontal bars, one per stage ({"name", "value", "color"}), in the given order."""
    frame = pd.DataFrame(stages, columns=["name", "value", "color"])
    order = frame["name"].tolist()
    bars = alt.Chart(frame).mark_bar(cornerRadiusEnd=4, size=24).encode(
        x=alt.X("value:Q", axis=None),
        y=alt.Y("name:N", sort=order, title=None),
        color=alt.Color("color:N", scale=None, legend=None),
        tooltip=["name", alt.Tooltip("value:Q", format=",.0f")],
    )
    labels = bars.mark_text(align="left", dx=4, color="#94a3b8").encode(text=alt.Text("value:Q", format=",.0f"))
    return (bars + labels).properties(height=220)


def daily_cost_chart(series: pd.Series) -> alt.Chart:
    frame = series.rename("cost").rename_axis("date").reset_index()
    return (
        alt.Chart(frame)
        .mark_bar()
        .encode(
            x=alt.X("date:T", title="Dia", axis=alt.Axis(format="%d/%m")),
            y=alt.Y("cost:Q", title="Investimento alocado (R$)", axis=alt.Axis(format=",.2f")),
            tooltip=[alt.Tooltip("date:T", format="%d/%m/%Y"), alt.Tooltip("cost:Q", format=",.2f")],
        )
        .properties(height=220)
    )
