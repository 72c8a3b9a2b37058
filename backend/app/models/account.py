"""
Account database model.

One row per ledger account in the chart of accounts.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum, JSON
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.ledger_enums import Basket


class Account(Base):
    """
    Ledger account.

    Created once and never deleted; only entries are appended to it.
    Permissions are stored as lists of role values (Manager, Accountant,
    Staff, Viewer).
    """
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), unique=True, index=True, nullable=False)
    basket = Column(Enum(Basket, values_callable=lambda e: [m.value for m in e]), nullable=False)

    edit_permission = Column(JSON, nullable=False, default=list)
    view_permission = Column(JSON, nullable=False, default=list)

    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Account(id={self.id}, name='{self.name}', basket='{self.basket.value}')>"
