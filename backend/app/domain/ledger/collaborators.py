"""
Collaborator interfaces consumed by the ledger core.

The wallet (identity, cipher, audit actions) and the blob store are
external services. The ledger only sees these narrow capabilities, so
tests can inject deterministic fakes.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol


@dataclass(frozen=True)
class AuditRef:
    """Opaque reference returned by the audit service; stored verbatim."""
    txid: str
    output_script: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PublishedBlob:
    uhrp_hash: str
    public_url: str


@dataclass(frozen=True)
class DownloadedBlob:
    mime_type: str
    data: bytes


class Cipher(Protocol):
    """Reversible field encryption keyed by an opaque identity key."""

    async def encrypt(self, plaintext: str) -> str: ...

    async def decrypt(self, ciphertext: str) -> str: ...


class AuditService(Protocol):
    """Creates an external audit record for a list of fields."""

    async def record(self, protocol_id: str, key_id: str, fields: List[str], description: str) -> AuditRef: ...


class IdentityProvider(Protocol):
    """Supplies the identity public key of the acting user."""

    async def get_public_key(self, reason: str) -> str: ...


class SignatureVerifier(Protocol):
    """Checks that `signature` over `data` was made with `public_key`."""

    async def verify(self, public_key: str, data: str, signature: str) -> bool: ...


class BlobStore(Protocol):
    """Content-addressable file storage."""

    async def publish(
        self, filename: str, content: bytes, content_type: Optional[str], retention_minutes: int
    ) -> PublishedBlob: ...

    async def download(self, uhrp_url: str) -> DownloadedBlob: ...


class StaticIdentityProvider:
    """Identity already established upstream, e.g. by a session token."""

    def __init__(self, public_key: str):
        self.public_key = public_key

    async def get_public_key(self, reason: str) -> str:
        return self.public_key
