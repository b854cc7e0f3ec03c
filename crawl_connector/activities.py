"""In-memory sink implementations used by the crawl runner."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from .interface import ProcessActivity, SeedingActivity
from .models import RepositoryDocument

logger = structlog.get_logger()


class SeedCollector(SeedingActivity):
    """Collects seeds in discovery order, dropping duplicates."""

    def __init__(self) -> None:
        self._seen: set[str] = set()
        self.seeds: list[str] = []

    async def add_seed_document(self, identifier: str) -> None:
        if identifier in self._seen:
            return
        self._seen.add(identifier)
        self.seeds.append(identifier)

    def __len__(self) -> int:
        return len(self.seeds)


@dataclass
class IngestedDocument:
    identifier: str
    version: str
    uri: str
    document: RepositoryDocument


class DocumentCollector(ProcessActivity):
    """Keeps ingested documents in memory (dry runs and tests)."""

    def __init__(self) -> None:
        self.documents: list[IngestedDocument] = []

    async def ingest_document(
        self,
        identifier: str,
        version: str,
        uri: str,
        document: RepositoryDocument,
    ) -> None:
        self.documents.append(IngestedDocument(identifier, version, uri, document))
        logger.debug("document_collected", identifier=identifier, size=document.size)
