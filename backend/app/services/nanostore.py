"""
Nanostore blob storage client.

Publishes invoice files for a retention period and resolves UHRP URLs
back to their content.
"""

import logging
from typing import Optional

import httpx

from backend.app.core.config import settings
from backend.app.core.exceptions import CollaboratorError
from backend.app.core.reliability import CircuitBreaker, CircuitOpenError, blob_circuit_breaker
from backend.app.domain.ledger.collaborators import DownloadedBlob, PublishedBlob

logger = logging.getLogger("bookkeeper.nanostore")

SERVICE_NAME = "nanostore"


class NanostoreClient:
    """Blob store backed by a nanostore host."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: Optional[str] = None,
        breaker: CircuitBreaker = blob_circuit_breaker,
    ):
        self.http_client = http_client
        self.base_url = (base_url or settings.nanostore_url).rstrip("/")
        self.breaker = breaker

    async def _call(self, operation: str, send):
        try:
            return await self.breaker.call(send)
        except CircuitOpenError:
            logger.error("Blob store circuit open", extra={"operation": operation})
            raise CollaboratorError(SERVICE_NAME, "Blob store temporarily unavailable")
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Blob store rejected request",
                extra={"operation": operation, "status_code": exc.response.status_code},
            )
            raise CollaboratorError(SERVICE_NAME, f"{operation} failed with {exc.response.status_code}") from exc
        except (httpx.RequestError, KeyError, ValueError) as exc:
            logger.error("Blob store request failed", extra={"operation": operation, "error": str(exc)})
            raise CollaboratorError(SERVICE_NAME, f"{operation} failed") from exc

    async def publish(
        self, filename: str, content: bytes, content_type: Optional[str], retention_minutes: int
    ) -> PublishedBlob:
        async def send() -> PublishedBlob:
            response = await self.http_client.post(
                f"{self.base_url}/upload",
                files={"file": (filename, content, content_type or "application/octet-stream")},
                data={"retentionPeriod": str(retention_minutes)},
            )
            response.raise_for_status()
            body = response.json()
            return PublishedBlob(uhrp_hash=body["hash"], public_url=body["publicURL"])

        blob = await self._call("publish", send)
        logger.info("Blob published", extra={"uhrp_hash": blob.uhrp_hash, "size_bytes": len(content)})
        return blob

    async def download(self, uhrp_url: str) -> DownloadedBlob:
        async def send() -> DownloadedBlob:
            response = await self.http_client.get(f"{self.base_url}/content", params={"uhrp": uhrp_url})
            response.raise_for_status()
            return DownloadedBlob(
                mime_type=response.headers.get("content-type", "application/octet-stream"),
                data=response.content,
            )

        return await self._call("download", send)
