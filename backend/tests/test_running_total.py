"""
Running-total polarity tests.
"""

import random
from decimal import Decimal

import pytest

from backend.app.domain.ledger.running_total import ZERO, compute_running_total
from backend.app.models.ledger_enums import Basket


@pytest.mark.parametrize("basket", [Basket.ASSET, Basket.EXPENSE])
def test_debit_normal_accounts_increase_on_debit(basket):
    assert compute_running_total(Decimal("100"), basket, Decimal("25"), ZERO) == Decimal("125")
    assert compute_running_total(Decimal("100"), basket, ZERO, Decimal("25")) == Decimal("75")


@pytest.mark.parametrize("basket", [Basket.LIABILITY, Basket.INCOME])
def test_credit_normal_accounts_increase_on_credit(basket):
    assert compute_running_total(Decimal("100"), basket, ZERO, Decimal("25")) == Decimal("125")
    assert compute_running_total(Decimal("100"), basket, Decimal("25"), ZERO) == Decimal("75")


def test_negative_amounts_rejected():
    with pytest.raises(ValueError):
        compute_running_total(ZERO, Basket.ASSET, Decimal("-1"), ZERO)
    with pytest.raises(ValueError):
        compute_running_total(ZERO, Basket.INCOME, ZERO, Decimal("-0.01"))


@pytest.mark.parametrize("basket", list(Basket))
@pytest.mark.parametrize("seed", [1, 7, 42])
def test_final_total_matches_sum_of_sides(basket, seed):
    """Folding a random sequence gives sum(debit) - sum(credit), sign flipped for credit-normal."""
    rng = random.Random(seed)
    total = ZERO
    debits = ZERO
    credits = ZERO
    for _ in range(50):
        amount = Decimal(rng.randint(1, 100000)) / 100
        if rng.random() < 0.5:
            debit, credit = amount, ZERO
        else:
            debit, credit = ZERO, amount
        total = compute_running_total(total, basket, debit, credit)
        debits += debit
        credits += credit

    expected = debits - credits if basket.is_debit_normal else credits - debits
    assert total == expected
