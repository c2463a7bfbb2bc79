"""Core (UI-agnostic) dashboard logic.

This package contains:
- data loading (PostgREST rows -> canonical records)
- date range normalization and filtering
- period aggregation, cost pro-ration and derived KPIs
- page compute functions (JSON-serializable payloads)
- chart helpers (Altair -> Vega-Lite spec dict)
"""
