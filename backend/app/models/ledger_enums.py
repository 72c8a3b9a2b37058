"""
Ledger enumerations.
"""

import enum


class Basket(str, enum.Enum):
    """Account classification; decides balance polarity."""
    ASSET = "asset"
    LIABILITY = "liability"
    INCOME = "income"
    EXPENSE = "expense"

    @property
    def is_debit_normal(self) -> bool:
        """Debits increase asset and expense balances."""
        return self in (Basket.ASSET, Basket.EXPENSE)
