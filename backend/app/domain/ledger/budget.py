"""
Budget Aggregator (Domain Logic).

Read-side folds over an account's decoded entries: balances, monthly
averages, liability averages and the forward monthly projection.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import ResourceNotFoundError, ValidationFailedError
from backend.app.domain.ledger.codec import LedgerEntryCodec
from backend.app.domain.ledger.collaborators import Cipher
from backend.app.domain.ledger.permissions import can_view
from backend.app.domain.ledger.running_total import ZERO
from backend.app.models.account import Account
from backend.app.models.account_entry import AccountEntry
from backend.app.models.enums import UserRole
from backend.app.models.ledger_enums import Basket
from backend.app.services.cache import CacheService, budget_key

logger = logging.getLogger("bookkeeper.ledger.budget")

CENT = Decimal("0.01")


def round_amount(value: Decimal) -> Decimal:
    """Round to cents for display."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class ProjectionRow:
    month: int
    starting_value: Decimal
    total_expenses: Decimal
    total_income: Decimal
    remaining: Decimal


@dataclass(frozen=True)
class AccountFigure:
    name: str
    amount: Decimal


@dataclass
class BasketSummary:
    accounts: List[AccountFigure] = field(default_factory=list)
    total: Decimal = ZERO


@dataclass
class BudgetOverview:
    assets: BasketSummary
    liabilities: BasketSummary
    expenses: BasketSummary
    income: BasketSummary
    projection: List[ProjectionRow]


def monthly_projection(
    months: int,
    starting_assets: Decimal,
    monthly_expense_total: Decimal,
    monthly_income_total: Decimal,
) -> List[ProjectionRow]:
    """
    Project the asset balance forward month by month.

    remaining[i] = remaining[i-1] - expenses + income, starting from the
    asset total. Returns exactly ``months`` rows numbered 1..months.
    """
    if months is None or months < 0:
        raise ValidationFailedError("Projection months must be zero or positive", details={"months": months})

    rows = []
    starting_value = starting_assets
    for month in range(1, months + 1):
        remaining = starting_value - monthly_expense_total + monthly_income_total
        rows.append(
            ProjectionRow(
                month=month,
                starting_value=starting_value,
                total_expenses=monthly_expense_total,
                total_income=monthly_income_total,
                remaining=remaining,
            )
        )
        starting_value = remaining
    return rows


class BudgetAggregator:
    """
    Computes per-account aggregates from persisted entries.

    Every aggregate decodes the full history of an account. Results are
    cached in Redis keyed by the account's last sequence number.
    """

    def __init__(self, cipher: Cipher):
        self.codec = LedgerEntryCodec(cipher)

    async def running_total(self, db: AsyncSession, account_name: str) -> Decimal:
        """Balance after the last entry, or 0 for an empty ledger."""
        account = await self._get_account(db, account_name)
        return await self._running_total(db, account)

    async def distinct_months(self, db: AsyncSession, account_name: str) -> List[str]:
        account = await self._get_account(db, account_name)
        return await self._distinct_months(db, account.id)

    async def distinct_month_count(self, db: AsyncSession, account_name: str) -> int:
        return len(await self.distinct_months(db, account_name))

    async def account_average(self, db: AsyncSession, account_name: str) -> Decimal:
        """Running total divided by the number of months with entries (0 if none)."""
        account = await self._get_account(db, account_name)
        return await self._account_average(db, account)

    async def liability_average(self, db: AsyncSession, account_name: str) -> Decimal:
        """Sum of (debit - credit) over all entries per month with entries (0 if none)."""
        account = await self._get_account(db, account_name)
        return await self._liability_average(db, account)

    async def budget_overview(
        self, db: AsyncSession, role: UserRole, months: Optional[int] = None
    ) -> BudgetOverview:
        """
        Group the viewable accounts by basket and project the asset balance.

        Per-account figures are rounded to cents; basket totals are the
        unrounded sums.
        """
        months = settings.projection_months if months is None else months
        if months < 0:
            raise ValidationFailedError("Projection months must be zero or positive", details={"months": months})

        result = await db.execute(select(Account).order_by(Account.name))
        accounts = [a for a in result.scalars().all() if can_view(a, role)]

        summaries: Dict[Basket, BasketSummary] = {basket: BasketSummary() for basket in Basket}
        for account in accounts:
            if account.basket == Basket.ASSET:
                amount = await self._running_total(db, account)
            elif account.basket == Basket.LIABILITY:
                amount = await self._liability_average(db, account)
            else:
                amount = await self._account_average(db, account)

            summary = summaries[account.basket]
            summary.accounts.append(AccountFigure(name=account.name, amount=round_amount(amount)))
            summary.total += amount

        projection = monthly_projection(
            months,
            summaries[Basket.ASSET].total,
            summaries[Basket.EXPENSE].total,
            summaries[Basket.INCOME].total,
        )
        logger.info("Budget overview computed", extra={"accounts": len(accounts), "months": months})

        return BudgetOverview(
            assets=summaries[Basket.ASSET],
            liabilities=summaries[Basket.LIABILITY],
            expenses=summaries[Basket.EXPENSE],
            income=summaries[Basket.INCOME],
            projection=projection,
        )

    async def _get_account(self, db: AsyncSession, account_name: str) -> Account:
        result = await db.execute(select(Account).where(Account.name == account_name))
        account = result.scalar_one_or_none()
        if account is None:
            raise ResourceNotFoundError("Account", account_name)
        return account

    async def _entries(self, db: AsyncSession, account_id: int) -> List[AccountEntry]:
        result = await db.execute(
            select(AccountEntry)
            .where(AccountEntry.account_id == account_id)
            .order_by(AccountEntry.sequence_no)
        )
        return list(result.scalars().all())

    async def _last_sequence_no(self, db: AsyncSession, account_id: int) -> int:
        result = await db.execute(
            select(AccountEntry.sequence_no)
            .where(AccountEntry.account_id == account_id)
            .order_by(AccountEntry.sequence_no.desc())
            .limit(1)
        )
        return result.scalar_one_or_none() or 0

    async def _distinct_months(self, db: AsyncSession, account_id: int) -> List[str]:
        result = await db.execute(select(AccountEntry.date).where(AccountEntry.account_id == account_id))
        return sorted({d.strftime("%Y-%m") for d in result.scalars().all()})

    async def _cached(self, db: AsyncSession, account: Account, metric: str, compute) -> Decimal:
        """
        Serve a metric from the cache, computing it on a miss.

        ``compute`` returns ``(value, complete)``. Values built from fallback
        amounts are returned but not cached.
        """
        key = budget_key(account.id, await self._last_sequence_no(db, account.id), metric)
        cached = await CacheService.get(key)
        if cached is not None:
            return Decimal(cached)
        value, complete = await compute()
        if complete:
            await CacheService.set(key, str(value))
        return value

    async def _last_running_total(self, db: AsyncSession, account: Account) -> Tuple[Decimal, bool]:
        result = await db.execute(
            select(AccountEntry)
            .where(AccountEntry.account_id == account.id)
            .order_by(AccountEntry.sequence_no.desc())
            .limit(1)
        )
        last_entry = result.scalar_one_or_none()
        if last_entry is None:
            return ZERO, True
        decoded = await self.codec.decode(last_entry.encrypted_data)
        if "runningTotal" in decoded.failed_fields:
            logger.warning(
                "Running total unreadable, using 0",
                extra={"account": account.name, "sequence_no": last_entry.sequence_no},
            )
            return ZERO, False
        return decoded.fields.running_total, True

    async def _running_total(self, db: AsyncSession, account: Account) -> Decimal:
        async def compute() -> Tuple[Decimal, bool]:
            return await self._last_running_total(db, account)

        return await self._cached(db, account, "running_total", compute)

    async def _account_average(self, db: AsyncSession, account: Account) -> Decimal:
        async def compute() -> Tuple[Decimal, bool]:
            month_count = len(await self._distinct_months(db, account.id))
            if month_count == 0:
                return ZERO, True
            running_total, complete = await self._last_running_total(db, account)
            return running_total / month_count, complete

        return await self._cached(db, account, "account_average", compute)

    async def _liability_average(self, db: AsyncSession, account: Account) -> Decimal:
        async def compute() -> Tuple[Decimal, bool]:
            entries = await self._entries(db, account.id)
            month_count = len({e.date.strftime("%Y-%m") for e in entries})
            if month_count == 0:
                return ZERO, True
            net = ZERO
            complete = True
            for entry in entries:
                # Corrupt amounts fall back to 0
                decoded = await self.codec.decode(entry.encrypted_data)
                if "debit" in decoded.failed_fields or "credit" in decoded.failed_fields:
                    complete = False
                net += decoded.fields.debit - decoded.fields.credit
            return net / month_count, complete

        return await self._cached(db, account, "liability_average", compute)
