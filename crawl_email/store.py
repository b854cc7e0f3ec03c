"""Mail store object model: store → folder → message.

Concrete adapters (:mod:`.imap_store`, :mod:`.pop3_store`) wrap the
blocking stdlib clients.  Every method here is synchronous; the session
manager runs them with ``asyncio.to_thread()``.
"""

from __future__ import annotations

import abc
import email
import email.message
import email.policy
import email.utils
import imaplib
import poplib
import re
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from functools import cached_property
from typing import TYPE_CHECKING

import structlog

from crawl_connector import ConnectorError, ServiceInterruption

from .config import ConnectionState, Protocol

if TYPE_CHECKING:
    from .search import SearchTerm

logger = structlog.get_logger()

# Header continuation: CRLF followed by whitespace
_FOLD = re.compile(r"\r?\n(?=[ \t])")


@dataclass
class MailMessage:
    """One message fetched from a folder.

    ``key`` is the store's native handle (IMAP UID, POP3 message number);
    the crawl identifier is the ``Message-ID`` header.  ``raw_bytes`` may
    hold only the header block when the message was fetched for seeding.
    """

    key: str
    raw_bytes: bytes

    @cached_property
    def message(self) -> email.message.EmailMessage:
        return email.message_from_bytes(self.raw_bytes, policy=email.policy.default)

    @property
    def message_id(self) -> str | None:
        """The ``Message-ID`` header exactly as sent, unfolded.

        The parsed header object normalises malformed ids (a missing ``>``
        gets added), and the server-side header search would then miss it.
        """
        for name, value in self.message.raw_items():
            if name.lower() == "message-id":
                return _FOLD.sub("", str(value)).strip() or None
        return None

    @property
    def subject(self) -> str:
        return str(self.message.get("Subject", ""))

    @property
    def from_addresses(self) -> list[str]:
        return _parse_address_list(self.message.get_all("From"))

    @property
    def to_addresses(self) -> list[str]:
        return _parse_address_list(self.message.get_all("To"))

    @property
    def sent_date(self) -> datetime | None:
        value = self.message.get("Date")
        if value is None:
            return None
        try:
            return email.utils.parsedate_to_datetime(str(value))
        except (TypeError, ValueError):
            return None

    @property
    def file_name(self) -> str | None:
        return self.message.get_filename()

    @property
    def size(self) -> int:
        return len(self.raw_bytes)

    def text_parts(self) -> Iterator[str]:
        """Yield the decoded content of every non-attachment text part."""
        for part in self.message.walk():
            if part.get_content_maintype() != "text":
                continue
            if part.get_content_disposition() == "attachment":
                continue
            try:
                content = part.get_content()
            except (LookupError, ValueError) as exc:
                logger.debug("text_part_undecodable", key=self.key, error=str(exc))
                continue
            if isinstance(content, str):
                yield content


def _parse_address_list(values: list[object] | None) -> list[str]:
    """Render every address in the given headers as ``Name <addr>`` or ``addr``.

    Display names holding specials such as ``,`` are quoted, so each entry
    parses back to one address.
    """
    if not values:
        return []
    rendered: list[str] = []
    for value in values:
        addresses = getattr(value, "addresses", None)
        if addresses is None:
            rendered.extend(
                email.utils.formataddr((name, addr)) if name else addr
                for name, addr in email.utils.getaddresses([str(value)])
                if addr
            )
            continue
        rendered.extend(str(a) for a in addresses if a.username or a.domain)
    return rendered


class MailFolder(abc.ABC):
    """A named container of messages inside a store."""

    def __init__(self, name: str) -> None:
        self.name = name

    @abc.abstractmethod
    def open_read_only(self) -> None: ...

    @abc.abstractmethod
    def search(
        self,
        term: SearchTerm | None,
        *,
        headers_only: bool = False,
    ) -> list[MailMessage]:
        """Return the messages matching *term* (every message if ``None``)."""
        ...

    @abc.abstractmethod
    def close(self) -> None: ...


class MailStore(abc.ABC):
    """A connection to a remote mail store."""

    def __init__(self, state: ConnectionState) -> None:
        self._state = state

    @abc.abstractmethod
    def connect(self) -> None:
        """Open the transport and authenticate."""
        ...

    @abc.abstractmethod
    def folder(self, name: str) -> MailFolder: ...

    @abc.abstractmethod
    def verify(self) -> None:
        """Cheap round trip proving the connection is usable."""
        ...

    @abc.abstractmethod
    def close(self) -> None:
        """Log out and drop the transport.  No-op when not connected."""
        ...


def open_store(state: ConnectionState) -> MailStore:
    """Return an unconnected store adapter for *state*'s protocol."""
    if not state.server:
        raise ConnectorError("No mail server configured")

    if state.protocol in (Protocol.IMAP, Protocol.IMAPS):
        from .imap_store import ImapStore

        return ImapStore(state)
    if state.protocol in (Protocol.POP3, Protocol.POP3S):
        from .pop3_store import Pop3Store

        return Pop3Store(state)
    raise ConnectorError(f"Protocol {state.protocol.value!r} does not provide a mail store")


def classify_store_error(exc: BaseException) -> ConnectorError:
    """Map a failure raised by a store adapter to the connector error taxonomy.

    Transport, timeout, TLS, authentication and protocol-level failures are
    service interruptions; anything else is fatal.
    """
    if isinstance(exc, ConnectorError):
        return exc
    if isinstance(exc, (OSError, EOFError, imaplib.IMAP4.error, poplib.error_proto)):
        return ServiceInterruption(f"{type(exc).__name__}: {exc}")
    return ConnectorError(f"{type(exc).__name__}: {exc}")
