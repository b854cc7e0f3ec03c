"""Async HTTP ingestion sink with optional mTLS."""

from __future__ import annotations

import base64
import ssl

import httpx
import structlog

from .config import IngestionAPIConfig
from .errors import ConnectorError, ServiceInterruption
from .interface import ProcessActivity
from .models import RepositoryDocument

logger = structlog.get_logger()


class IngestionClient(ProcessActivity):
    """Delivers extracted documents to the ingestion API over HTTP.

    The binary body travels base64-encoded inside a JSON payload together
    with the identifier, version, URI and metadata fields.  Supports mTLS
    when certificate paths are configured.
    """

    def __init__(self, config: IngestionAPIConfig) -> None:
        self._config = config
        self._client: httpx.AsyncClient | None = None
        self._started = False

    async def start(self) -> None:
        self._started = True

        # Skip client creation if base_url is empty (disabled mode)
        if not self._config.base_url:
            logger.info("ingestion_client_disabled", reason="empty_base_url")
            return

        ssl_context: ssl.SSLContext | bool = False

        if self._config.mtls_cert_path and self._config.mtls_key_path:
            ssl_context = ssl.create_default_context(
                cafile=self._config.mtls_ca_path,
            )
            ssl_context.load_cert_chain(
                certfile=self._config.mtls_cert_path,
                keyfile=self._config.mtls_key_path,
            )

        self._client = httpx.AsyncClient(
            base_url=self._config.base_url,
            timeout=httpx.Timeout(self._config.timeout_seconds),
            verify=ssl_context,
        )
        logger.info("ingestion_client_started", base_url=self._config.base_url)

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            logger.info("ingestion_client_stopped")

    async def ingest_document(
        self,
        identifier: str,
        version: str,
        uri: str,
        document: RepositoryDocument,
    ) -> None:
        """POST one document to the ingestion API.

        If the client is disabled (base_url was empty), this is a no-op.
        Raises :class:`ServiceInterruption` when the API is unreachable or
        fails with a 5xx status, :class:`ConnectorError` on other error statuses.
        """
        if not self._started:
            raise AssertionError("Client not started")

        if self._client is None:
            return  # disabled

        payload = {
            "identifier": identifier,
            "version": version,
            "uri": uri,
            "file_name": document.file_name,
            "mime_type": document.mime_type,
            "size": document.size,
            "fields": document.fields,
            "content_base64": base64.b64encode(document.binary).decode("ascii"),
        }
        response = await self._post(identifier, payload)
        logger.debug(
            "document_submitted",
            identifier=identifier,
            status_code=response.status_code,
        )

    async def _post(self, identifier: str, payload: dict[str, object]) -> httpx.Response:
        """POST *payload* and map HTTP failures to the connector error taxonomy.

        Transport errors and 5xx responses are service interruptions so the
        batch is retried; any other error status is fatal for the cycle.
        """
        assert self._client is not None
        try:
            response = await self._client.post("/v1/documents", json=payload)
            response.raise_for_status()
        except httpx.TransportError as exc:
            logger.warning("ingestion_api_unreachable", identifier=identifier, error=str(exc))
            raise ServiceInterruption(f"Ingestion API unreachable: {exc}") from exc
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            logger.warning("ingestion_api_rejected", identifier=identifier, status_code=status_code)
            if status_code >= 500:
                raise ServiceInterruption(f"Ingestion API error {status_code}") from exc
            raise ConnectorError(f"Ingestion API rejected {identifier}: {status_code}") from exc
        return response
