"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import (
    auth, accounts, general_journal, budget,
    users, messages, invoices
)

router = APIRouter()

# Sessions
router.include_router(auth.router)

# Ledger
router.include_router(accounts.router)
router.include_router(general_journal.router)
router.include_router(budget.router)

# Team
router.include_router(users.router)
router.include_router(messages.router)

# Blob storage
router.include_router(invoices.router)
