"""
Budget Schemas.
"""

from pydantic import BaseModel
from decimal import Decimal
from typing import List


class AccountFigureResponse(BaseModel):
    name: str
    amount: Decimal

    class Config:
        from_attributes = True


class BasketSummaryResponse(BaseModel):
    accounts: List[AccountFigureResponse]
    total: Decimal

    class Config:
        from_attributes = True


class ProjectionRowResponse(BaseModel):
    month: int
    starting_value: Decimal
    total_expenses: Decimal
    total_income: Decimal
    remaining: Decimal

    class Config:
        from_attributes = True


class BudgetOverviewResponse(BaseModel):
    """Per-basket figures (rounded per account) plus the monthly projection."""
    assets: BasketSummaryResponse
    liabilities: BasketSummaryResponse
    expenses: BasketSummaryResponse
    income: BasketSummaryResponse
    projection: List[ProjectionRowResponse]

    class Config:
        from_attributes = True
