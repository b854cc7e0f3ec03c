"""Email connector configuration: connection parameters, job specification
and the runtime connection state derived from them.
"""

from __future__ import annotations

from enum import Enum

import structlog
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings

from crawl_connector import ConnectorConfig, ConnectorError

logger = structlog.get_logger()

SESSION_TTL_MS = 300_000
DEFAULT_FOLDER = "INBOX"


class Protocol(str, Enum):
    """Mail access protocol.  ``smtp`` is accepted but provides no store."""

    IMAP = "imap"
    IMAPS = "imaps"
    POP3 = "pop3"
    POP3S = "pop3s"
    SMTP = "smtp"

    @property
    def has_folders(self) -> bool:
        return self in (Protocol.IMAP, Protocol.IMAPS)


DEFAULT_PORTS: dict[Protocol, int] = {
    Protocol.IMAP: 143,
    Protocol.IMAPS: 993,
    Protocol.POP3: 110,
    Protocol.POP3S: 995,
    Protocol.SMTP: 25,
}


class FilterAttribute(str, Enum):
    SUBJECT = "subject"
    FROM = "from"
    TO = "to"
    BODY = "body"
    FOLDER = "folder"


class MetadataField(str, Enum):
    SUBJECT = "subject"
    FROM = "from"
    TO = "to"
    BODY = "body"
    DATE = "date"
    ATTACHMENT_ENCODING = "attachment-encoding"
    ATTACHMENT_MIMETYPE = "attachment-mimetype"


def _lower(value: object) -> object:
    return value.strip().lower() if isinstance(value, str) else value


# ----------------------------------------------------------------------
# Host-persisted configuration
# ----------------------------------------------------------------------


class ConnectionProperty(BaseModel):
    """One extra (name, value) connection property."""

    name: str
    value: str


class ConnectionParams(BaseSettings):
    """Mail server connection parameters as persisted by the host."""

    model_config = {"env_prefix": "EMAIL_"}

    server: str = Field(default="", description="Mail server hostname")
    port: str = Field(default="", description="Mail server port; empty uses the protocol default")
    protocol: str = Field(default="imap", description="imap, imaps, pop3, pop3s (or smtp)")
    username: str = Field(default="", description="Login username")
    password: SecretStr = Field(default=SecretStr(""), description="Login password")
    properties: list[ConnectionProperty] = Field(
        default_factory=list,
        description="Extra connection properties, e.g. timeout or starttls",
    )


class SearchFilter(BaseModel):
    """A declarative (attribute, value) search filter."""

    model_config = ConfigDict(frozen=True)

    name: FilterAttribute
    value: str

    @field_validator("name", mode="before")
    @classmethod
    def normalize_name(cls, value: object) -> object:
        return _lower(value)


class JobSpecification(BaseSettings):
    """What to crawl (filters) and what to extract (metadata)."""

    model_config = {"env_prefix": "EMAIL_JOB_"}

    filters: list[SearchFilter] = Field(
        default_factory=list,
        description="Search filters; each non-folder filter is searched separately",
    )
    metadata: set[MetadataField] = Field(
        default_factory=set,
        description="Metadata fields to attach to every extracted document",
    )

    @field_validator("metadata", mode="before")
    @classmethod
    def normalize_metadata(cls, value: object) -> object:
        if isinstance(value, (list, set, tuple)):
            return {_lower(item) for item in value}
        return value


class EmailConnectorConfig(ConnectorConfig):
    """Runner config for the email connector.

    Extends ConnectorConfig (inherits retry, ingestion_api, health_port, job_mode).
    """

    connection: ConnectionParams = Field(default_factory=ConnectionParams)
    job: JobSpecification = Field(default_factory=JobSpecification)
    session_ttl_ms: int = Field(
        default=SESSION_TTL_MS,
        description="Idle milliseconds after which an open mailbox session is torn down",
    )


# ----------------------------------------------------------------------
# Runtime state
# ----------------------------------------------------------------------


class ConnectionState(BaseModel):
    """Resolved endpoint and credentials for one configured mailbox."""

    model_config = ConfigDict(frozen=True)

    server: str
    port: int
    protocol: Protocol
    username: str
    password: SecretStr
    properties: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_params(cls, params: ConnectionParams) -> ConnectionState:
        """Parse persisted parameters.

        Raises :class:`ConnectorError` for an unknown protocol or a
        non-numeric port.  An empty server is accepted here and reported
        on first use.
        """
        try:
            protocol = Protocol(params.protocol.strip().lower())
        except ValueError:
            raise ConnectorError(f"Unknown mail protocol: {params.protocol!r}") from None

        port_text = params.port.strip()
        if not port_text:
            port = DEFAULT_PORTS[protocol]
        elif port_text.isdigit():
            port = int(port_text)
        else:
            raise ConnectorError(f"Invalid port: {params.port!r}")

        properties = {prop.name: prop.value for prop in params.properties}
        unknown = sorted(set(properties) - {"timeout", "starttls"})
        if unknown:
            logger.debug("connection_properties_ignored", names=unknown)

        return cls(
            server=params.server.strip(),
            port=port,
            protocol=protocol,
            username=params.username,
            password=params.password,
            properties=properties,
        )

    @property
    def timeout_seconds(self) -> float | None:
        raw = self.properties.get("timeout")
        if not raw:
            return None
        try:
            return float(raw)
        except ValueError:
            raise ConnectorError(f"Invalid timeout property: {raw!r}") from None

    @property
    def starttls(self) -> bool:
        return self.properties.get("starttls", "").strip().lower() in ("1", "true", "yes")
