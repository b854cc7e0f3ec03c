"""Pull-crawl contracts: the repository connector ABC and the sinks it feeds."""

from __future__ import annotations

import abc
from collections.abc import Sequence
from typing import Any

from .models import ConnectorModel, JobMode, RepositoryDocument


class SeedingActivity(abc.ABC):
    """Sink for document identifiers discovered during seeding."""

    @abc.abstractmethod
    async def add_seed_document(self, identifier: str) -> None:
        """Record *identifier* as a seed.  Duplicates must be tolerated."""
        ...


class ProcessActivity(abc.ABC):
    """Sink for documents extracted during processing."""

    @abc.abstractmethod
    async def ingest_document(
        self,
        identifier: str,
        version: str,
        uri: str,
        document: RepositoryDocument,
    ) -> None:
        """Hand one extracted document to the ingestion pipeline."""
        ...


class RepositoryConnector(abc.ABC):
    """Abstract interface for a pull-crawl repository connector.

    Documents are fetched in three phases driven by the scheduler:

    1. :meth:`add_seed_documents` discovers document identifiers,
    2. :meth:`get_document_versions` assigns a version string to each,
    3. :meth:`process_documents` fetches the documents and ingests them.

    An instance is used by one worker at a time.  Connection parameters
    are supplied with :meth:`connect` and dropped with :meth:`disconnect`;
    between those calls the scheduler invokes :meth:`poll` periodically
    so the connector can release idle resources.
    """

    connector_model: ConnectorModel = ConnectorModel.ADD

    @abc.abstractmethod
    def connect(self, params: Any) -> None:
        """Store the connection parameters.  Must not perform network I/O."""
        ...

    @abc.abstractmethod
    async def disconnect(self) -> None:
        """Release every resource and forget the connection parameters."""
        ...

    async def poll(self) -> None:
        """Idle-time housekeeping; called periodically while not in use."""

    async def check(self) -> str:
        """Return a human-readable description of the connection status."""
        return "Connection working"

    @abc.abstractmethod
    async def add_seed_documents(
        self,
        activities: SeedingActivity,
        spec: Any,
        start_time: int,
        end_time: int,
        job_mode: JobMode,
    ) -> None:
        """Report seed identifiers for ``[start_time, end_time)`` (ms epoch)."""
        ...

    @abc.abstractmethod
    async def get_document_versions(
        self,
        identifiers: Sequence[str],
        old_versions: Sequence[str | None],
        spec: Any,
        job_mode: JobMode,
    ) -> list[str]:
        """Return one version string per identifier, in the same order."""
        ...

    @abc.abstractmethod
    async def process_documents(
        self,
        identifiers: Sequence[str],
        versions: Sequence[str],
        activities: ProcessActivity,
        spec: Any,
        scan_only: Sequence[bool],
        job_mode: JobMode,
    ) -> int:
        """Fetch and ingest the documents.  Returns how many were extracted."""
        ...

    def bin_names(self, identifier: str) -> list[str]:
        """Throttling bins for *identifier*; empty means unthrottled."""
        return []

    def max_documents_per_batch(self) -> int:
        """Largest number of identifiers per :meth:`process_documents` call."""
        return 1

    def activities(self) -> list[str]:
        """Names of the activities this connector records."""
        return []

    async def health_check(self) -> dict[str, object]:
        """Return connector-specific health details.

        Override to include repository connectivity, counters, etc.  The
        dict is included in the ``/health`` response.
        """
        return {}
