"""
Running-total calculation for ledger accounts.

Asset and expense accounts are debit-normal: a debit raises the balance.
Liability and income accounts are credit-normal: a credit raises it.
"""

from decimal import Decimal

from backend.app.models.ledger_enums import Basket

ZERO = Decimal("0")


def compute_running_total(prior_total: Decimal, basket: Basket, debit: Decimal, credit: Decimal) -> Decimal:
    """
    Return the account balance after applying one entry.

    Args:
        prior_total: Balance after the previous entry (0 for an empty ledger)
        basket: Account classification
        debit: Non-negative debit amount
        credit: Non-negative credit amount

    Raises:
        ValueError: If debit or credit is negative
    """
    if debit < ZERO or credit < ZERO:
        raise ValueError("debit and credit must be non-negative")

    if basket.is_debit_normal:
        return prior_total + debit - credit
    return prior_total - debit + credit
