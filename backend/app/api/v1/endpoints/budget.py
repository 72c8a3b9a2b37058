"""
Budget API endpoints.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.core.config import settings
from backend.app.core.dependencies import current_role, get_budget_aggregator
from backend.app.core.guards import require_ledger_member
from backend.app.domain.ledger.budget import BudgetAggregator
from backend.app.schemas.budget import BudgetOverviewResponse

router = APIRouter(prefix="/budget", tags=["Budget"])


@router.get("", response_model=BudgetOverviewResponse)
async def get_budget_overview(
    months: int = Query(settings.projection_months, ge=0, le=120),
    current_user: dict = Depends(require_ledger_member),
    aggregator: BudgetAggregator = Depends(get_budget_aggregator),
    db: AsyncSession = Depends(get_db)
):
    """
    Assets by balance, expenses and income by monthly average, liabilities
    by average monthly net debit, plus a month-by-month projection.
    """
    overview = await aggregator.budget_overview(db, current_role(current_user), months)
    return BudgetOverviewResponse.model_validate(overview)
