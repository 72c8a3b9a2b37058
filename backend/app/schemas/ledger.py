"""
Ledger Pydantic schemas.

Accounts, entries, transactions and the general journal. Amounts are
Decimals and serialize as strings.
"""

from pydantic import BaseModel, Field
from datetime import date as date_type, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from backend.app.models.ledger_enums import Basket


class AccountCreate(BaseModel):
    """
    Schema for account creation.

    Used by POST /accounts/create. The opening entry is posted in the same
    transaction; leave both amounts at 0 for an empty account.
    """
    account_name: str = Field(..., min_length=1, max_length=100, description="Unique account name")
    basket: Basket = Field(..., description="asset, liability, income or expense")
    edit_permission: Optional[List[str]] = Field(default=None, description="Roles allowed to post (default Manager)")
    view_permission: Optional[List[str]] = Field(default=None, description="Roles allowed to read (default Viewer)")
    opening_date: Optional[date_type] = None
    opening_debit: Decimal = Field(default=Decimal("0"), ge=0)
    opening_credit: Decimal = Field(default=Decimal("0"), ge=0)


class AccountResponse(BaseModel):
    id: int
    name: str
    basket: Basket
    edit_permission: List[str]
    view_permission: List[str]
    created_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class EntryCreate(BaseModel):
    """
    Schema for posting one entry.

    Used by POST /accounts/entry and POST /general-journal/entry.
    """
    account_name: str = Field(..., min_length=1, max_length=100)
    date: date_type
    description: str = Field(default="", max_length=1000)
    debit: Decimal = Field(default=Decimal("0"), ge=0)
    credit: Decimal = Field(default=Decimal("0"), ge=0)
    basket: Optional[Basket] = Field(default=None, description="Must match the account when given")
    idempotency_key: Optional[str] = Field(default=None, max_length=100)


class TransactionCreate(BaseModel):
    """Balanced double entry: debit one account, credit another."""
    debit_account: str = Field(..., min_length=1, max_length=100)
    credit_account: str = Field(..., min_length=1, max_length=100)
    date: date_type
    description: str = Field(default="", max_length=1000)
    debit_amount: Decimal = Field(..., gt=0)
    credit_amount: Decimal = Field(..., gt=0)
    idempotency_key: Optional[str] = Field(default=None, max_length=90)


class AuditRefResponse(BaseModel):
    txid: Optional[str] = None
    output_script: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class PostedEntryResponse(BaseModel):
    account_name: str
    basket: Basket
    sequence_no: int
    entry_id: int
    journal_id: int
    date: date_type
    description: str
    debit: Decimal
    credit: Decimal
    running_total: Decimal
    audit_ref: AuditRefResponse
    replayed: bool = False


class TransactionResponse(BaseModel):
    debit: PostedEntryResponse
    credit: PostedEntryResponse


class EntryResponse(BaseModel):
    """Decoded entry; fields that failed to decode carry fallbacks."""
    sequence_no: int
    date: date_type
    description: str
    debit: Decimal
    credit: Decimal
    running_total: Decimal
    owner_public_key: str
    txid: Optional[str] = None
    failed_fields: List[str] = []
    created_at: datetime


class AccountEntriesResponse(BaseModel):
    account: AccountResponse
    entries: List[EntryResponse]


class RawEntryResponse(BaseModel):
    sequence_no: int
    date: date_type
    encrypted_data: str
    txid: Optional[str] = None
    output_script: Optional[str] = None
    audit_metadata: Optional[Dict[str, Any]] = None
    created_at: datetime

    class Config:
        from_attributes = True


class LastEntryResponse(BaseModel):
    encrypted_data: Optional[str] = None
    basket: Basket
    sequence_no: Optional[int] = None


class JournalEntryResponse(BaseModel):
    id: int
    account_name: str
    date: date_type
    description: str
    debit: Decimal
    credit: Decimal
    running_total: Decimal
    owner_public_key: str
    txid: Optional[str] = None
    failed_fields: List[str] = []
    created_at: datetime


class AccountSummaryResponse(BaseModel):
    name: str
    basket: Basket
    running_total: Decimal
    month_count: int
    monthly_average: Decimal
    liability_average: Decimal


class AccountCreatedResponse(BaseModel):
    account: AccountResponse
    opening_entry: PostedEntryResponse
