from __future__ import annotations

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field


class DateRangeModel(BaseModel):
    start: Optional[date] = None
    end: Optional[date] = None
    label: str = ""


class FinancialSettingsModel(BaseModel):
    average_ticket: float = Field(default=0.0, ge=0)


class InvestmentModel(BaseModel):
    start_date: date
    end_date: date
    amount: float = Field(ge=0)
    platform: Optional[str] = None

