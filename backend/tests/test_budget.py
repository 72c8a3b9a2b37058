"""
Budget aggregation and projection tests.
"""

import json
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select, update

import backend.app.core.redis_client as redis_module
from backend.app.core.exceptions import ResourceNotFoundError, ValidationFailedError
from backend.app.domain.ledger.budget import BudgetAggregator, monthly_projection
from backend.app.domain.ledger.collaborators import StaticIdentityProvider
from backend.app.domain.ledger.poster import EntryRequest, LedgerPoster
from backend.app.models.account import Account
from backend.app.models.account_entry import AccountEntry
from backend.app.models.enums import UserRole
from backend.app.models.ledger_enums import Basket
from backend.app.services.cache import BUDGET_PREFIX

OWNER = StaticIdentityProvider("02owner")


@pytest.fixture
def aggregator(cipher):
    return BudgetAggregator(cipher)


@pytest.fixture
def ledger(db_session, cipher, audit_service):
    """Create an account and post (date, debit, credit) lines to it."""
    poster = LedgerPoster(cipher, audit_service)

    async def _ledger(name, basket, lines=(), view=("Viewer",)):
        db_session.add(Account(name=name, basket=basket, edit_permission=["Manager"], view_permission=list(view)))
        await db_session.commit()
        for day, debit, credit in lines:
            await poster.post_entry(
                db_session,
                EntryRequest(
                    account_name=name,
                    date=day,
                    description="",
                    debit=Decimal(debit),
                    credit=Decimal(credit),
                ),
                OWNER,
                UserRole.KEY_PERSON,
            )
    return _ledger


@pytest.fixture
async def sample_books(ledger):
    await ledger("Cash", Basket.ASSET, [(date(2024, 1, 1), "1000", "0")])
    await ledger("Rent", Basket.EXPENSE, [(date(2024, 1, 15), "1000", "0"), (date(2024, 2, 15), "1000", "0")])
    await ledger("Sales", Basket.INCOME, [(date(2024, 1, 20), "0", "3000")])
    await ledger("Loan", Basket.LIABILITY, [(date(2024, 1, 2), "0", "500"), (date(2024, 2, 2), "100", "0")])


async def test_empty_account_figures_are_zero(aggregator, ledger, db_session):
    await ledger("Savings", Basket.ASSET)

    assert await aggregator.running_total(db_session, "Savings") == Decimal("0")
    assert await aggregator.distinct_month_count(db_session, "Savings") == 0
    assert await aggregator.account_average(db_session, "Savings") == Decimal("0")
    assert await aggregator.liability_average(db_session, "Savings") == Decimal("0")


async def test_unknown_account(aggregator, db_session):
    with pytest.raises(ResourceNotFoundError):
        await aggregator.running_total(db_session, "Nope")


async def test_expense_average_spreads_over_months(aggregator, sample_books, db_session):
    assert await aggregator.distinct_months(db_session, "Rent") == ["2024-01", "2024-02"]
    assert await aggregator.running_total(db_session, "Rent") == Decimal("2000")
    assert await aggregator.account_average(db_session, "Rent") == Decimal("1000")


async def test_liability_average_is_net_debit_per_month(aggregator, sample_books, db_session):
    assert await aggregator.running_total(db_session, "Loan") == Decimal("400")
    assert await aggregator.liability_average(db_session, "Loan") == Decimal("-200")


async def test_budget_overview(aggregator, sample_books, db_session):
    overview = await aggregator.budget_overview(db_session, UserRole.KEY_PERSON, months=3)

    assert [(f.name, f.amount) for f in overview.assets.accounts] == [("Cash", Decimal("1000.00"))]
    assert overview.expenses.total == Decimal("1000")
    assert overview.income.total == Decimal("3000")
    assert overview.liabilities.accounts[0].amount == Decimal("-200.00")

    assert [row.month for row in overview.projection] == [1, 2, 3]
    assert [row.remaining for row in overview.projection] == [Decimal("3000"), Decimal("5000"), Decimal("7000")]
    assert overview.projection[1].starting_value == Decimal("3000")


async def test_budget_overview_hides_unviewable_accounts(aggregator, ledger, db_session):
    await ledger("Cash", Basket.ASSET, [(date(2024, 1, 1), "50", "0")])
    await ledger("Payroll", Basket.EXPENSE, [(date(2024, 1, 1), "10", "0")], view=("Accountant",))

    overview = await aggregator.budget_overview(db_session, UserRole.VIEWER, months=1)

    assert [f.name for f in overview.assets.accounts] == ["Cash"]
    assert overview.expenses.accounts == []
    assert overview.projection[0].remaining == Decimal("50")


async def test_budget_overview_default_horizon(aggregator, db_session):
    overview = await aggregator.budget_overview(db_session, UserRole.KEY_PERSON)
    assert len(overview.projection) == 12


def test_projection_rows():
    rows = monthly_projection(3, Decimal("1000"), Decimal("1000"), Decimal("3000"))

    assert [r.month for r in rows] == [1, 2, 3]
    assert [r.remaining for r in rows] == [Decimal("3000"), Decimal("5000"), Decimal("7000")]
    assert rows[0].starting_value == Decimal("1000")


def test_projection_edge_cases():
    assert monthly_projection(0, Decimal("10"), Decimal("1"), Decimal("2")) == []
    with pytest.raises(ValidationFailedError):
        monthly_projection(-1, Decimal("10"), Decimal("1"), Decimal("2"))


async def test_aggregates_are_cached(aggregator, sample_books, db_session, redis_client_session):
    await aggregator.running_total(db_session, "Cash")

    assert any(key.startswith(BUDGET_PREFIX) for key in redis_client_session.store)


async def test_cache_tracks_new_entries(aggregator, ledger, db_session, cipher, audit_service):
    await ledger("Cash", Basket.ASSET, [(date(2024, 1, 1), "100", "0")])
    assert await aggregator.running_total(db_session, "Cash") == Decimal("100")

    await LedgerPoster(cipher, audit_service).post_entry(
        db_session,
        EntryRequest(account_name="Cash", date=date(2024, 1, 2), description="", debit=Decimal("5"), credit=Decimal("0")),
        OWNER,
        UserRole.KEY_PERSON,
    )

    assert await aggregator.running_total(db_session, "Cash") == Decimal("105")


async def test_cache_outage_falls_back_to_computation(aggregator, sample_books, db_session, mocker):
    broken = mocker.MagicMock()
    broken.get = mocker.AsyncMock(side_effect=ConnectionError("redis down"))
    broken.setex = mocker.AsyncMock(side_effect=ConnectionError("redis down"))
    mocker.patch.object(redis_module, "redis_client", broken)

    assert await aggregator.account_average(db_session, "Rent") == Decimal("1000")


async def corrupt_field(db_session, account_name, key):
    """Overwrite one ciphertext in the bag of an account's last entry."""
    query = (
        select(AccountEntry)
        .join(Account, Account.id == AccountEntry.account_id)
        .where(Account.name == account_name)
        .order_by(AccountEntry.sequence_no.desc())
    )
    entry = (await db_session.execute(query.limit(1))).scalar_one()

    bag = json.loads(entry.encrypted_data)
    bag[key] = "garbage"
    await db_session.execute(
        update(AccountEntry).where(AccountEntry.id == entry.id).values(encrypted_data=json.dumps(bag))
    )
    await db_session.commit()


async def test_unreadable_running_total_reads_as_zero(aggregator, sample_books, db_session):
    await corrupt_field(db_session, "Rent", "runningTotal")

    assert await aggregator.running_total(db_session, "Rent") == Decimal("0")
    assert await aggregator.account_average(db_session, "Rent") == Decimal("0")
    assert await aggregator.distinct_month_count(db_session, "Rent") == 2


async def test_budget_overview_survives_unreadable_running_total(aggregator, sample_books, db_session):
    await corrupt_field(db_session, "Cash", "runningTotal")

    overview = await aggregator.budget_overview(db_session, UserRole.KEY_PERSON, months=2)

    assert [(f.name, f.amount) for f in overview.assets.accounts] == [("Cash", Decimal("0.00"))]
    assert overview.expenses.total == Decimal("1000")
    assert [row.remaining for row in overview.projection] == [Decimal("2000"), Decimal("4000")]


async def test_unreadable_amount_counts_as_zero_in_liability_average(aggregator, sample_books, db_session):
    # Loan: credit 500 in January, debit 100 in February
    await corrupt_field(db_session, "Loan", "debit")

    assert await aggregator.liability_average(db_session, "Loan") == Decimal("-250")
    assert await aggregator.running_total(db_session, "Loan") == Decimal("400")

    overview = await aggregator.budget_overview(db_session, UserRole.KEY_PERSON, months=1)
    assert overview.liabilities.accounts[0].amount == Decimal("-250.00")


async def test_fallback_figures_are_not_cached(aggregator, sample_books, db_session, redis_client_session):
    await corrupt_field(db_session, "Rent", "runningTotal")
    await corrupt_field(db_session, "Loan", "debit")

    await aggregator.account_average(db_session, "Rent")
    await aggregator.liability_average(db_session, "Loan")

    cached_metrics = {key.rsplit(":", 1)[-1] for key in redis_client_session.store if key.startswith(BUDGET_PREFIX)}
    assert "account_average" not in cached_metrics
    assert "liability_average" not in cached_metrics
