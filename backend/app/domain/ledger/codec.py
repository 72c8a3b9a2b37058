"""
Ledger Entry Codec.

Each sensitive field of an entry is encrypted on its own and the
ciphertexts are written as one JSON object into a single column:

    {"description": ..., "debit": ..., "credit": ..., "runningTotal": ..., "publicKey": ...}

Decoding never aborts a record. A field that is missing, empty, or fails
to decrypt or parse is replaced by a fallback and reported in
``DecodedEntry.failed_fields``.
"""

import json
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

from backend.app.domain.ledger.collaborators import Cipher

logger = logging.getLogger("bookkeeper.ledger.codec")

TEXT_FALLBACK = "[Decryption Failed]"
NUMERIC_FALLBACK = Decimal("0")

# bag key -> attribute name
TEXT_FIELDS = {"description": "description", "publicKey": "owner_public_key"}
NUMERIC_FIELDS = {"debit": "debit", "credit": "credit", "runningTotal": "running_total"}
BAG_KEYS = ("description", "debit", "credit", "runningTotal", "publicKey")


@dataclass(frozen=True)
class EntryFields:
    description: str
    debit: Decimal
    credit: Decimal
    running_total: Decimal
    owner_public_key: str


@dataclass(frozen=True)
class DecodedEntry:
    fields: EntryFields
    failed_fields: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.failed_fields


def _attr(key: str) -> str:
    return TEXT_FIELDS.get(key) or NUMERIC_FIELDS[key]


class LedgerEntryCodec:
    """Encrypts entry fields into a bag and decodes bags defensively."""

    def __init__(self, cipher: Cipher):
        self.cipher = cipher

    async def encode(self, fields: EntryFields) -> str:
        bag = {}
        for key in BAG_KEYS:
            value = getattr(fields, _attr(key))
            plaintext = str(value) if isinstance(value, Decimal) else value
            bag[key] = await self.cipher.encrypt(plaintext)
        return json.dumps(bag)

    async def decode(self, encrypted_data: Optional[str]) -> DecodedEntry:
        bag = self._parse_bag(encrypted_data)

        values = {}
        failed = []
        for key in BAG_KEYS:
            value = await self._decode_field(key, bag.get(key))
            if value is None:
                failed.append(key)
                value = TEXT_FALLBACK if key in TEXT_FIELDS else NUMERIC_FALLBACK
            values[_attr(key)] = value

        if failed:
            logger.warning("Entry fields could not be decoded", extra={"fields": failed})

        return DecodedEntry(fields=EntryFields(**values), failed_fields=tuple(failed))

    async def decode_field(self, encrypted_data: Optional[str], key: str):
        """Decode a single field of a bag, applying the same fallback rules."""
        value = await self._decode_field(key, self._parse_bag(encrypted_data).get(key))
        if value is None:
            logger.warning("Entry field could not be decoded", extra={"fields": [key]})
            return TEXT_FALLBACK if key in TEXT_FIELDS else NUMERIC_FALLBACK
        return value

    @staticmethod
    def _parse_bag(encrypted_data: Optional[str]) -> dict:
        if not encrypted_data:
            return {}
        try:
            bag = json.loads(encrypted_data)
        except (TypeError, ValueError):
            return {}
        return bag if isinstance(bag, dict) else {}

    async def _decode_field(self, key: str, ciphertext):
        """Return the decoded value, or None when the field is unusable."""
        if not isinstance(ciphertext, str) or not ciphertext:
            return None
        try:
            plaintext = await self.cipher.decrypt(ciphertext)
        except Exception:
            logger.warning("Cipher rejected entry field", extra={"field": key}, exc_info=True)
            return None

        if key in TEXT_FIELDS:
            return plaintext

        try:
            number = Decimal(plaintext)
        except (InvalidOperation, TypeError, ValueError):
            return None
        return number if number.is_finite() else None
