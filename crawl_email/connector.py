"""EmailConnector: crawls a mailbox over IMAP or POP3.

Seeds are ``Message-ID`` values of messages matching the job's search
filters.  Processing re-locates each message by that identifier and
hands the raw RFC 822 bytes, with the requested metadata, to the sink.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

import structlog

from crawl_connector import (
    ConnectorError,
    ConnectorModel,
    JobMode,
    ProcessActivity,
    RepositoryConnector,
    SeedingActivity,
    ServiceInterruption,
)

from .config import SESSION_TTL_MS, ConnectionParams, ConnectionState, JobSpecification
from .extractor import DocumentExtractor
from .search import resolve_folder
from .seeder import Seeder
from .session import MailSession, monotonic_ms
from .store import MailStore, open_store
from .versioner import get_document_versions

logger = structlog.get_logger()

MAX_DOCUMENTS_PER_BATCH = 50
FETCH_ACTIVITY = "fetch"


class EmailConnector(RepositoryConnector):
    """Add-only repository connector for a single mailbox."""

    connector_model = ConnectorModel.ADD

    def __init__(
        self,
        *,
        session_ttl_ms: int = SESSION_TTL_MS,
        clock: Callable[[], int] = monotonic_ms,
        store_factory: Callable[[ConnectionState], MailStore] = open_store,
    ) -> None:
        self._session_ttl_ms = session_ttl_ms
        self._clock = clock
        self._store_factory = store_factory
        self._state: ConnectionState | None = None
        self._session: MailSession | None = None
        self._seeds_emitted = 0
        self._documents_extracted = 0

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def connect(self, params: ConnectionParams) -> None:
        state = ConnectionState.from_params(params)
        self._state = state
        self._session = MailSession(
            state,
            ttl_ms=self._session_ttl_ms,
            clock=self._clock,
            store_factory=self._store_factory,
        )
        logger.info(
            "email_connector_connected",
            server=state.server,
            port=state.port,
            protocol=state.protocol.value,
            username=state.username,
        )

    async def disconnect(self) -> None:
        if self._session is not None:
            await self._session.close()
        self._session = None
        self._state = None
        logger.info("email_connector_disconnected")

    def _require_session(self) -> MailSession:
        if self._session is None:
            raise ConnectorError("Email connector is not connected")
        return self._session

    async def poll(self) -> None:
        if self._session is not None:
            await self._session.check_liveness()

    async def check(self) -> str:
        try:
            await self._require_session().test_connection()
        except ServiceInterruption as exc:
            logger.warning("connection_check_failed", retryable=True, error=str(exc))
            return f"Connection temporarily failed: {exc}"
        except ConnectorError as exc:
            logger.warning("connection_check_failed", retryable=False, error=str(exc))
            return f"Connection failed: {exc}"
        return "Connection working"

    # ------------------------------------------------------------------
    # Crawl phases
    # ------------------------------------------------------------------

    async def add_seed_documents(
        self,
        activities: SeedingActivity,
        spec: JobSpecification,
        start_time: int,
        end_time: int,
        job_mode: JobMode,
    ) -> None:
        seeder = Seeder(self._require_session())
        self._seeds_emitted += await seeder.seed(
            spec.filters, activities, start_time, end_time, job_mode
        )

    async def get_document_versions(
        self,
        identifiers: Sequence[str],
        old_versions: Sequence[str | None],
        spec: JobSpecification,
        job_mode: JobMode,
    ) -> list[str]:
        self._require_session()
        return get_document_versions(identifiers)

    async def process_documents(
        self,
        identifiers: Sequence[str],
        versions: Sequence[str],
        activities: ProcessActivity,
        spec: JobSpecification,
        scan_only: Sequence[bool],
        job_mode: JobMode,
    ) -> int:
        extractor = DocumentExtractor(self._require_session())
        extracted = await extractor.extract(
            identifiers,
            versions,
            spec.metadata,
            activities,
            scan_only=scan_only,
            folder_name=resolve_folder(spec.filters),
        )
        self._documents_extracted += len(extracted)
        return len(extracted)

    # ------------------------------------------------------------------
    # Scheduler hints and health
    # ------------------------------------------------------------------

    def bin_names(self, identifier: str) -> list[str]:
        if self._state is None:
            return []
        return [self._state.server]

    def max_documents_per_batch(self) -> int:
        return MAX_DOCUMENTS_PER_BATCH

    def activities(self) -> list[str]:
        return [FETCH_ACTIVITY]

    async def health_check(self) -> dict[str, object]:
        state = self._state
        return {
            "connected": state is not None,
            "server": state.server if state else None,
            "protocol": state.protocol.value if state else None,
            "session_open": self._session.is_open if self._session else False,
            "seeds_emitted": self._seeds_emitted,
            "documents_extracted": self._documents_extracted,
        }
