"""
Wallet collaborator client.

The wallet is a local HTTP service that owns the user's identity keys. It
provides field encryption, identity public keys, signature checks,
PushDrop locking scripts and actions (the external audit records).
Every call goes through the shared wallet circuit breaker; transport
failures surface as CollaboratorError.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from backend.app.core.config import settings
from backend.app.core.exceptions import CollaboratorError
from backend.app.core.reliability import CircuitBreaker, CircuitOpenError, wallet_circuit_breaker
from backend.app.domain.ledger.collaborators import AuditRef

logger = logging.getLogger("bookkeeper.wallet")

SERVICE_NAME = "wallet"


class WalletClient:
    """
    Thin JSON client for the wallet HTTP interface.

    Args:
        http_client: Shared httpx client (owned by the application)
        base_url: Wallet base URL
        breaker: Circuit breaker guarding the wallet
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: Optional[str] = None,
        breaker: CircuitBreaker = wallet_circuit_breaker,
    ):
        self.http_client = http_client
        self.base_url = (base_url or settings.wallet_url).rstrip("/")
        self.breaker = breaker

    async def _post(self, endpoint: str, body: Dict[str, Any]) -> Dict[str, Any]:
        async def send() -> Dict[str, Any]:
            response = await self.http_client.post(
                f"{self.base_url}{endpoint}",
                json=body,
                timeout=settings.wallet_timeout_seconds,
            )
            response.raise_for_status()
            return response.json() if response.content else {}

        try:
            return await self.breaker.call(send)
        except CircuitOpenError:
            logger.error("Wallet circuit open", extra={"endpoint": endpoint})
            raise CollaboratorError(SERVICE_NAME, "Wallet temporarily unavailable")
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Wallet rejected request",
                extra={"endpoint": endpoint, "status_code": exc.response.status_code},
            )
            raise CollaboratorError(SERVICE_NAME, f"{endpoint} failed with {exc.response.status_code}") from exc
        except (httpx.RequestError, ValueError) as exc:
            logger.error("Wallet request failed", extra={"endpoint": endpoint, "error": str(exc)})
            raise CollaboratorError(SERVICE_NAME, f"{endpoint} failed") from exc

    async def encrypt(self, plaintext: str, protocol_id: str, key_id: str) -> str:
        data = await self._post(
            "/encrypt",
            {"plaintext": plaintext, "protocolID": [0, protocol_id], "keyID": key_id},
        )
        return data["ciphertext"]

    async def decrypt(self, ciphertext: str, protocol_id: str, key_id: str) -> str:
        data = await self._post(
            "/decrypt",
            {"ciphertext": ciphertext, "protocolID": [0, protocol_id], "keyID": key_id, "returnType": "string"},
        )
        return data["plaintext"]

    async def get_public_key(self, reason: str) -> str:
        data = await self._post("/getPublicKey", {"reason": reason, "identityKey": True})
        return data["publicKey"]

    async def create_pushdrop_script(self, fields: List[str], protocol_id: str, key_id: str) -> str:
        data = await self._post(
            "/pushdrop/create",
            {"fields": fields, "protocolID": protocol_id, "keyID": key_id},
        )
        return data["lockingScript"]

    async def create_action(self, outputs: List[Dict[str, Any]], description: str) -> Dict[str, Any]:
        return await self._post("/createAction", {"outputs": outputs, "description": description})

    async def verify_signature(
        self, data: str, signature: str, protocol_id: str, key_id: str, counterparty: str
    ) -> bool:
        result = await self._post(
            "/verifySignature",
            {
                "data": data,
                "signature": signature,
                "protocolID": [2, protocol_id],
                "keyID": key_id,
                "counterparty": counterparty,
            },
        )
        return result.get("valid") is True


class WalletCipher:
    """Cipher backed by the wallet's symmetric field encryption."""

    def __init__(self, client: WalletClient, protocol_id: Optional[str] = None, key_id: Optional[str] = None):
        self.client = client
        self.protocol_id = protocol_id or settings.encryption_protocol_id
        self.key_id = key_id or settings.encryption_key_id

    async def encrypt(self, plaintext: str) -> str:
        return await self.client.encrypt(plaintext, self.protocol_id, self.key_id)

    async def decrypt(self, ciphertext: str) -> str:
        return await self.client.decrypt(ciphertext, self.protocol_id, self.key_id)


class WalletAuditService:
    """
    Audit records as wallet actions.

    Builds a PushDrop locking script over the timestamped fields, then
    creates a one-output action carrying it.
    """

    def __init__(self, client: WalletClient):
        self.client = client

    async def record(self, protocol_id: str, key_id: str, fields: List[str], description: str) -> AuditRef:
        timestamp = datetime.now(timezone.utc).isoformat()
        output_script = await self.client.create_pushdrop_script([timestamp, *fields], protocol_id, key_id)
        action = await self.client.create_action(
            outputs=[
                {
                    "satoshis": settings.audit_output_satoshis,
                    "script": output_script,
                    "description": description,
                }
            ],
            description=description,
        )

        txid = action.get("txid")
        if not txid:
            raise CollaboratorError(SERVICE_NAME, "Action returned no txid")

        logger.info("Audit record created", extra={"protocol_id": protocol_id, "txid": txid})
        return AuditRef(txid=txid, output_script=output_script, metadata={"rawTx": action.get("rawTx")})


class WalletSignatureVerifier:
    """
    Verifies session signatures with the wallet.

    The signer is the counterparty, so the wallet checks the signature
    against the key the caller claims.
    """

    def __init__(self, client: WalletClient):
        self.client = client

    async def verify(self, public_key: str, data: str, signature: str) -> bool:
        valid = await self.client.verify_signature(
            data, signature, settings.session_protocol_id, settings.session_key_id, counterparty=public_key
        )
        if not valid:
            logger.warning("Session signature rejected", extra={"public_key": public_key})
        return valid


class WalletIdentityProvider:
    """Identity of the operator whose wallet this server talks to."""

    def __init__(self, client: WalletClient):
        self.client = client

    async def get_public_key(self, reason: str) -> str:
        return await self.client.get_public_key(reason)
