"""Shared test fixtures for the crawl connector test suite."""

from __future__ import annotations

from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import pytest

from crawl_connector import ConnectorError
from crawl_connector.config import ConnectorConfig, IngestionAPIConfig, RetryConfig
from crawl_email.config import ConnectionParams, ConnectionState, Protocol
from crawl_email.search import SearchTerm
from crawl_email.store import MailFolder, MailMessage, MailStore


@pytest.fixture
def retry_config() -> RetryConfig:
    return RetryConfig(
        max_attempts=3,
        initial_wait_seconds=0.01,
        max_wait_seconds=0.1,
        multiplier=2.0,
    )


@pytest.fixture
def ingestion_api_config() -> IngestionAPIConfig:
    return IngestionAPIConfig(base_url="http://test-api:8000")


@pytest.fixture
def connector_config(
    retry_config: RetryConfig,
    ingestion_api_config: IngestionAPIConfig,
) -> ConnectorConfig:
    return ConnectorConfig(
        name="test-connector",
        health_port=18080,
        retry=retry_config,
        ingestion_api=ingestion_api_config,
    )


@pytest.fixture
def connection_params() -> ConnectionParams:
    return ConnectionParams(
        server="mail.test.com",
        port="",
        protocol="imaps",
        username="testuser",
        password="testpass",
    )


@pytest.fixture
def imap_state() -> ConnectionState:
    return ConnectionState(
        server="imap.test.com",
        port=993,
        protocol=Protocol.IMAPS,
        username="testuser",
        password="testpass",
    )


@pytest.fixture
def pop3_state() -> ConnectionState:
    return ConnectionState(
        server="pop.test.com",
        port=995,
        protocol=Protocol.POP3S,
        username="testuser",
        password="testpass",
    )


# ------------------------------------------------------------------
# Sample EML builders
# ------------------------------------------------------------------


def _build_plain_email(
    *,
    subject: str = "Test Subject",
    from_addr: str = "sender@example.com",
    to_addr: str = "recipient@example.com",
    body: str = "Hello, World!",
    message_id: str | None = "<test-001@example.com>",
) -> bytes:
    """Build a simple plain-text email as raw bytes."""
    msg = MIMEText(body, "plain")
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = to_addr
    if message_id is not None:
        msg["Message-ID"] = message_id
    msg["Date"] = "Sun, 01 Jun 2025 12:00:00 +0000"
    return msg.as_bytes()


def _build_multipart_email(
    *,
    subject: str = "Multipart Email",
    body_text: str = "Plain body",
    message_id: str = "<multi-001@example.com>",
    attachments: list[tuple[str, str, bytes]] | None = None,
) -> bytes:
    """Build a multipart/mixed email with a text body and optional attachments."""
    msg = MIMEMultipart("mixed")
    msg["Subject"] = subject
    msg["From"] = "sender@example.com"
    msg["To"] = "recipient@example.com"
    msg["Message-ID"] = message_id
    msg["Date"] = "Sun, 01 Jun 2025 12:00:00 +0000"

    msg.attach(MIMEText(body_text, "plain"))

    for filename, content_type, payload in attachments or []:
        maintype, subtype = content_type.split("/", 1)
        part = MIMEBase(maintype, subtype)
        part.set_payload(payload)
        encoders.encode_base64(part)
        part.add_header("Content-Disposition", "attachment", filename=filename)
        msg.attach(part)

    return msg.as_bytes()


@pytest.fixture
def plain_eml_bytes() -> bytes:
    return _build_plain_email()


@pytest.fixture
def multipart_eml_bytes() -> bytes:
    return _build_multipart_email(
        attachments=[
            ("report.pdf", "application/pdf", b"%PDF-1.4 fake pdf content"),
            ("data.csv", "text/csv", b"col1,col2\na,b\n"),
        ],
    )


# ------------------------------------------------------------------
# In-memory mail store
# ------------------------------------------------------------------


class FakeMailbox:
    """Backing data and call counters shared by every FakeStore it creates."""

    def __init__(self, folders: dict[str, list[bytes]] | None = None) -> None:
        self.folders: dict[str, list[bytes]] = folders if folders is not None else {"INBOX": []}
        self.connects = 0
        self.store_closes = 0
        self.folder_opens: list[str] = []
        self.folder_closes = 0
        self.verifies = 0
        self.searches: list[SearchTerm | None] = []

        self.connect_error: BaseException | None = None
        self.verify_error: BaseException | None = None
        self.search_error: BaseException | None = None
        self.close_error: BaseException | None = None

    def factory(self, state: ConnectionState) -> FakeStore:
        return FakeStore(state, self)


class FakeStore(MailStore):
    def __init__(self, state: ConnectionState, mailbox: FakeMailbox) -> None:
        super().__init__(state)
        self._mailbox = mailbox

    def connect(self) -> None:
        self._mailbox.connects += 1
        if self._mailbox.connect_error is not None:
            raise self._mailbox.connect_error

    def folder(self, name: str) -> FakeFolder:
        return FakeFolder(name, self._mailbox)

    def verify(self) -> None:
        self._mailbox.verifies += 1
        if self._mailbox.verify_error is not None:
            raise self._mailbox.verify_error

    def close(self) -> None:
        self._mailbox.store_closes += 1
        if self._mailbox.close_error is not None:
            raise self._mailbox.close_error


class FakeFolder(MailFolder):
    def __init__(self, name: str, mailbox: FakeMailbox) -> None:
        super().__init__(name)
        self._mailbox = mailbox

    def open_read_only(self) -> None:
        if self.name not in self._mailbox.folders:
            raise ConnectorError(f"Cannot open folder {self.name!r}")
        self._mailbox.folder_opens.append(self.name)

    def search(
        self,
        term: SearchTerm | None,
        *,
        headers_only: bool = False,
    ) -> list[MailMessage]:
        self._mailbox.searches.append(term)
        if self._mailbox.search_error is not None:
            raise self._mailbox.search_error
        messages = [
            MailMessage(key=str(number), raw_bytes=raw)
            for number, raw in enumerate(self._mailbox.folders[self.name], start=1)
        ]
        if term is None:
            return messages
        return [message for message in messages if term.match(message)]

    def close(self) -> None:
        self._mailbox.folder_closes += 1


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, now: int = 1_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def mailbox() -> FakeMailbox:
    return FakeMailbox()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
