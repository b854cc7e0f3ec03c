"""Data models for the pull-crawl connector framework."""

from __future__ import annotations

import io
from collections.abc import Iterable
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ConnectorStatus(str, Enum):
    """Runtime status of a crawl runner."""

    STARTING = "starting"
    RUNNING = "running"
    DEGRADED = "degraded"
    STOPPING = "stopping"
    STOPPED = "stopped"


class JobMode(str, Enum):
    """How the scheduler runs a job."""

    CONTINUOUS = "continuous"
    ONCE = "once"


class ConnectorModel(str, Enum):
    """What the seeds returned by a connector mean to the scheduler.

    ``ADD`` connectors only ever report documents that exist; they never
    report deletions or changes through seeding.
    """

    ADD = "add"
    ADD_CHANGE = "add_change"
    ADD_CHANGE_DELETE = "add_change_delete"


class RepositoryDocument(BaseModel):
    """Binary content plus multi-valued metadata handed to the ingestion sink."""

    file_name: str | None = Field(default=None, description="Original file name, if any")
    mime_type: str = Field(
        default="application/octet-stream",
        description="Content type of the binary body",
    )
    binary: bytes = Field(default=b"", description="Binary body of the document")
    size: int = Field(default=0, description="Size of the binary body in bytes")
    fields: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Metadata fields; every field is multi-valued",
    )

    def set_binary(self, data: bytes, *, mime_type: str | None = None) -> None:
        self.binary = data
        self.size = len(data)
        if mime_type is not None:
            self.mime_type = mime_type

    def add_field(self, name: str, values: str | Iterable[str]) -> None:
        """Append one value, or several, to the field *name*."""
        if isinstance(values, str):
            values = [values]
        self.fields.setdefault(name, []).extend(values)

    def stream(self) -> io.BytesIO:
        """Return a fresh readable stream over the binary body."""
        return io.BytesIO(self.binary)


class HealthStatus(BaseModel):
    """Response model for the /health K8s probe endpoint."""

    connector_name: str = Field(description="Name of the connector")
    status: ConnectorStatus = Field(description="Current runner status")
    uptime_seconds: float = Field(description="Seconds since the runner started")
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Connector-specific health details (e.g. last cycle time, session state)",
    )


class CycleReport(BaseModel):
    """Outcome of one seed → version → process crawl cycle."""

    seeds: int = Field(default=0, description="Distinct document identifiers seeded")
    batches: int = Field(default=0, description="process_documents calls issued")
    documents: int = Field(default=0, description="Documents extracted across all batches")
