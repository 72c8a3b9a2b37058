"""
Entry poster tests.

Covers running totals across sequential posts, the journal mirror,
atomicity on collaborator failure and per-account serialization.
"""

import asyncio
import json
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update

from backend.app.core.exceptions import (
    CollaboratorError,
    ConflictError,
    InsufficientPermissionsError,
    LedgerIntegrityError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from backend.app.domain.ledger.codec import LedgerEntryCodec
from backend.app.domain.ledger.collaborators import StaticIdentityProvider
from backend.app.domain.ledger.poster import EntryRequest, LedgerPoster
from backend.app.models.account import Account
from backend.app.models.account_entry import AccountEntry
from backend.app.models.enums import UserRole
from backend.app.models.general_journal import GeneralJournalEntry
from backend.app.models.ledger_enums import Basket

OWNER = StaticIdentityProvider("02owner")


@pytest.fixture
def poster(cipher, audit_service):
    return LedgerPoster(cipher, audit_service)


@pytest.fixture
def add_account(db_session):
    async def _add(name, basket, edit=("Manager",), view=("Viewer",)):
        account = Account(name=name, basket=basket, edit_permission=list(edit), view_permission=list(view))
        db_session.add(account)
        await db_session.commit()
        await db_session.refresh(account)
        return account
    return _add


def request(name, debit="0", credit="0", day=date(2024, 1, 1), description="", **kwargs):
    return EntryRequest(
        account_name=name,
        date=day,
        description=description,
        debit=Decimal(debit),
        credit=Decimal(credit),
        **kwargs,
    )


async def count(db_session, model):
    return await db_session.scalar(select(func.count()).select_from(model))


async def test_opening_asset_account(poster, add_account, db_session):
    await add_account("Cash", Basket.ASSET)

    posted = await poster.post_initial_entry(
        db_session, request("Cash", debit="1000", basket=Basket.ASSET), OWNER, UserRole.KEY_PERSON
    )

    assert posted.sequence_no == 1
    assert posted.fields.running_total == Decimal("1000")
    assert posted.fields.owner_public_key == "02owner"


async def test_sequential_asset_postings(poster, add_account, db_session):
    await add_account("Cash", Basket.ASSET)
    await poster.post_initial_entry(db_session, request("Cash", debit="1000"), OWNER, UserRole.KEY_PERSON)

    posted = await poster.post_entry(
        db_session, request("Cash", credit="200", day=date(2024, 1, 5)), OWNER, UserRole.KEY_PERSON
    )

    assert posted.sequence_no == 2
    assert posted.fields.running_total == Decimal("800")


async def test_liability_account_posting(poster, add_account, db_session):
    await add_account("Loan", Basket.LIABILITY)
    opening = await poster.post_initial_entry(db_session, request("Loan", credit="500"), OWNER, UserRole.KEY_PERSON)
    repayment = await poster.post_entry(db_session, request("Loan", debit="100"), OWNER, UserRole.KEY_PERSON)

    assert opening.fields.running_total == Decimal("500")
    assert repayment.fields.running_total == Decimal("400")


async def test_entry_is_mirrored_to_journal(poster, add_account, db_session, cipher):
    await add_account("Cash", Basket.ASSET)
    posted = await poster.post_initial_entry(
        db_session, request("Cash", debit="75.50", description="Float"), OWNER, UserRole.KEY_PERSON
    )

    entry = await db_session.get(AccountEntry, posted.entry_id)
    journal = await db_session.get(GeneralJournalEntry, posted.journal_id)

    assert journal.entry_id == entry.id
    assert journal.account_name == "Cash"
    assert journal.encrypted_data == entry.encrypted_data
    assert journal.txid == entry.txid == posted.audit_ref.txid

    decoded = await LedgerEntryCodec(cipher).decode(entry.encrypted_data)
    assert decoded.fields.description == "Float"
    assert decoded.fields.debit == Decimal("75.50")


async def test_one_audit_record_per_entry(poster, add_account, db_session, audit_service):
    await add_account("Cash", Basket.ASSET)
    await poster.post_initial_entry(db_session, request("Cash", debit="10"), OWNER, UserRole.KEY_PERSON)

    assert len(audit_service.records) == 1
    record = audit_service.records[0]
    assert record["protocol_id"] == "financial-tracker-accountentry"
    assert record["key_id"] == "02owner"
    assert record["fields"][0] == "2024-01-01"
    assert record["fields"][2] == "Cash"


async def test_audit_failure_leaves_nothing_persisted(poster, add_account, db_session, audit_service):
    await add_account("Cash", Basket.ASSET)
    await poster.post_initial_entry(db_session, request("Cash", debit="1000"), OWNER, UserRole.KEY_PERSON)

    audit_service.fail = True
    with pytest.raises(CollaboratorError):
        await poster.post_entry(db_session, request("Cash", credit="200"), OWNER, UserRole.KEY_PERSON)

    assert await count(db_session, AccountEntry) == 1
    assert await count(db_session, GeneralJournalEntry) == 1

    # The ledger keeps working once the collaborator recovers
    audit_service.fail = False
    posted = await poster.post_entry(db_session, request("Cash", credit="200"), OWNER, UserRole.KEY_PERSON)
    assert posted.sequence_no == 2
    assert posted.fields.running_total == Decimal("800")


async def test_concurrent_posts_are_serialized(poster, add_account, db_session, session_factory):
    await add_account("Cash", Basket.ASSET)
    await poster.post_initial_entry(db_session, request("Cash", debit="100"), OWNER, UserRole.KEY_PERSON)

    async def post_one():
        async with session_factory() as session:
            return await poster.post_entry(session, request("Cash", debit="10"), OWNER, UserRole.KEY_PERSON)

    results = await asyncio.gather(*[post_one() for _ in range(10)])

    assert sorted(r.sequence_no for r in results) == list(range(2, 12))
    assert sorted(r.fields.running_total for r in results) == [Decimal(100 + 10 * i) for i in range(1, 11)]


async def test_both_sides_rejected(poster, add_account, db_session, audit_service):
    await add_account("Cash", Basket.ASSET)

    with pytest.raises(ValidationFailedError):
        await poster.post_entry(db_session, request("Cash", debit="5", credit="5"), OWNER, UserRole.KEY_PERSON)
    with pytest.raises(ValidationFailedError):
        await poster.post_entry(db_session, request("Cash", debit="-5"), OWNER, UserRole.KEY_PERSON)

    assert audit_service.records == []


async def test_zero_zero_marker_entry_allowed(poster, add_account, db_session):
    await add_account("Petty", Basket.ASSET)
    posted = await poster.post_initial_entry(
        db_session, request("Petty", description="Account creation"), OWNER, UserRole.KEY_PERSON
    )
    assert posted.fields.running_total == Decimal("0")


async def test_initial_entry_refused_when_ledger_not_empty(poster, add_account, db_session):
    await add_account("Cash", Basket.ASSET)
    await poster.post_initial_entry(db_session, request("Cash", debit="1"), OWNER, UserRole.KEY_PERSON)

    with pytest.raises(ConflictError):
        await poster.post_initial_entry(db_session, request("Cash", debit="1"), OWNER, UserRole.KEY_PERSON)


async def test_basket_must_match(poster, add_account, db_session):
    await add_account("Cash", Basket.ASSET)

    with pytest.raises(ValidationFailedError):
        await poster.post_entry(
            db_session, request("Cash", debit="1", basket=Basket.LIABILITY), OWNER, UserRole.KEY_PERSON
        )


async def test_unknown_account(poster, db_session):
    with pytest.raises(ResourceNotFoundError):
        await poster.post_entry(db_session, request("Nope", debit="1"), OWNER, UserRole.KEY_PERSON)


async def test_edit_permission_enforced(poster, add_account, db_session):
    await add_account("Cash", Basket.ASSET, edit=("Accountant",), view=("Viewer", "Staff"))

    posted = await poster.post_entry(db_session, request("Cash", debit="1"), OWNER, UserRole.ACCOUNTANT)
    assert posted.sequence_no == 1

    for role in (UserRole.MANAGER, UserRole.STAFF, UserRole.VIEWER, UserRole.LIMITED_USER, UserRole.DELETED):
        with pytest.raises(InsufficientPermissionsError):
            await poster.post_entry(db_session, request("Cash", debit="1"), OWNER, role)


async def test_idempotent_replay(poster, add_account, db_session, audit_service):
    await add_account("Cash", Basket.ASSET)
    first = await poster.post_entry(
        db_session, request("Cash", debit="40", idempotency_key="inv-77"), OWNER, UserRole.KEY_PERSON
    )
    again = await poster.post_entry(
        db_session, request("Cash", debit="40", idempotency_key="inv-77"), OWNER, UserRole.KEY_PERSON
    )

    assert again.replayed
    assert again.entry_id == first.entry_id
    assert again.fields.running_total == Decimal("40")
    assert await count(db_session, AccountEntry) == 1
    assert len(audit_service.records) == 1


async def test_undecodable_prior_total_blocks_posting(poster, add_account, db_session):
    await add_account("Cash", Basket.ASSET)
    posted = await poster.post_initial_entry(db_session, request("Cash", debit="10"), OWNER, UserRole.KEY_PERSON)

    entry = await db_session.get(AccountEntry, posted.entry_id)
    bag = json.loads(entry.encrypted_data)
    bag["runningTotal"] = "corrupt"
    await db_session.execute(
        update(AccountEntry).where(AccountEntry.id == entry.id).values(encrypted_data=json.dumps(bag))
    )
    await db_session.commit()

    with pytest.raises(LedgerIntegrityError):
        await poster.post_entry(db_session, request("Cash", debit="1"), OWNER, UserRole.KEY_PERSON)


async def test_transaction_posts_both_sides(poster, add_account, db_session):
    await add_account("Cash", Basket.ASSET)
    await add_account("Sales", Basket.INCOME)

    debit_posted, credit_posted = await poster.post_transaction(
        db_session,
        debit_account="Cash",
        credit_account="Sales",
        entry_date=date(2024, 3, 1),
        description="Invoice 12",
        debit_amount=Decimal("300"),
        credit_amount=Decimal("300"),
        identity=OWNER,
        role=UserRole.MANAGER,
    )

    assert debit_posted.fields.debit == Decimal("300")
    assert debit_posted.fields.running_total == Decimal("300")
    assert credit_posted.fields.credit == Decimal("300")
    assert credit_posted.fields.running_total == Decimal("300")
    assert await count(db_session, GeneralJournalEntry) == 2


async def test_transaction_rejects_unbalanced_amounts(poster, add_account, db_session):
    await add_account("Cash", Basket.ASSET)
    await add_account("Sales", Basket.INCOME)

    with pytest.raises(ValidationFailedError, match="must be equal"):
        await poster.post_transaction(
            db_session, "Cash", "Sales", date(2024, 3, 1), "x",
            Decimal("300"), Decimal("299"), OWNER, UserRole.MANAGER,
        )
    with pytest.raises(ValidationFailedError):
        await poster.post_transaction(
            db_session, "Cash", "Cash", date(2024, 3, 1), "x",
            Decimal("1"), Decimal("1"), OWNER, UserRole.MANAGER,
        )


async def test_transaction_is_atomic(poster, add_account, db_session):
    await add_account("Cash", Basket.ASSET)
    await add_account("Sales", Basket.INCOME, edit=("Accountant",))

    # Manager may post to Cash but not to Sales
    with pytest.raises(InsufficientPermissionsError):
        await poster.post_transaction(
            db_session, "Cash", "Sales", date(2024, 3, 1), "x",
            Decimal("10"), Decimal("10"), OWNER, UserRole.MANAGER,
        )

    assert await count(db_session, AccountEntry) == 0
