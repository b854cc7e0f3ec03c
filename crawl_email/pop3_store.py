"""POP3 store adapter over stdlib poplib.

POP3 has a single folder and no server-side search, so the folder
retrieves every message once per open and filters on the client with
the same term semantics the IMAP server applies.
"""

from __future__ import annotations

import poplib
from typing import TYPE_CHECKING, Any

import structlog

from crawl_connector import ConnectorError

from .config import DEFAULT_FOLDER, ConnectionState, Protocol
from .store import MailFolder, MailMessage, MailStore

if TYPE_CHECKING:
    from .search import SearchTerm

logger = structlog.get_logger()


class Pop3Store(MailStore):
    """POP3 / POP3_SSL connection with optional STLS."""

    def __init__(self, state: ConnectionState) -> None:
        super().__init__(state)
        self._conn: poplib.POP3_SSL | poplib.POP3 | None = None

    def connect(self) -> None:
        state = self._state
        kwargs: dict[str, Any] = {}
        if state.timeout_seconds is not None:
            kwargs["timeout"] = state.timeout_seconds

        if state.protocol == Protocol.POP3S:
            conn = poplib.POP3_SSL(state.server, state.port, **kwargs)
        else:
            conn = poplib.POP3(state.server, state.port, **kwargs)

        try:
            if state.starttls and state.protocol == Protocol.POP3:
                conn.stls()
            conn.user(state.username)
            conn.pass_(state.password.get_secret_value())
        except Exception:
            conn.close()
            raise

        self._conn = conn
        logger.debug("pop3_connected", host=state.server, port=state.port)

    def _require_conn(self) -> poplib.POP3:
        if self._conn is None:
            raise ConnectorError("POP3 store is not connected")
        return self._conn

    def folder(self, name: str) -> Pop3Folder:
        if name.upper() != DEFAULT_FOLDER:
            raise ConnectorError(f"POP3 only provides the {DEFAULT_FOLDER} folder, not {name!r}")
        return Pop3Folder(self._require_conn())

    def verify(self) -> None:
        self._require_conn().noop()

    def close(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        conn.quit()
        logger.debug("pop3_disconnected", host=self._state.server)


class Pop3Folder(MailFolder):
    def __init__(self, conn: poplib.POP3) -> None:
        super().__init__(DEFAULT_FOLDER)
        self._conn = conn
        self._messages: list[MailMessage] | None = None

    def open_read_only(self) -> None:
        self._messages = None

    def close(self) -> None:
        self._messages = None

    def search(
        self,
        term: SearchTerm | None,
        *,
        headers_only: bool = False,
    ) -> list[MailMessage]:
        # Body predicates need full messages, so headers_only is not used.
        messages = self._load()
        if term is None:
            return list(messages)
        return [message for message in messages if term.match(message)]

    def _load(self) -> list[MailMessage]:
        if self._messages is not None:
            return self._messages

        _, listings, _ = self._conn.list()
        messages: list[MailMessage] = []
        for listing in listings:
            number = listing.split()[0].decode()
            _, lines, _ = self._conn.retr(number)
            raw = b"\r\n".join(lines) + b"\r\n"
            messages.append(MailMessage(key=number, raw_bytes=raw))

        logger.debug("pop3_messages_loaded", count=len(messages))
        self._messages = messages
        return messages
