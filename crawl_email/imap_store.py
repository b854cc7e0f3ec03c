"""IMAP store adapter over stdlib imaplib."""

from __future__ import annotations

import imaplib
from typing import TYPE_CHECKING, Any

import structlog

from crawl_connector import ConnectorError, ServiceInterruption

from .config import ConnectionState, Protocol
from .store import MailFolder, MailMessage, MailStore

if TYPE_CHECKING:
    from .search import SearchTerm

logger = structlog.get_logger()


def _quote(value: str) -> str:
    """Render *value* as an IMAP quoted string."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class ImapStore(MailStore):
    """IMAP4 / IMAP4_SSL connection with optional STARTTLS."""

    def __init__(self, state: ConnectionState) -> None:
        super().__init__(state)
        self._conn: imaplib.IMAP4_SSL | imaplib.IMAP4 | None = None

    def connect(self) -> None:
        state = self._state
        kwargs: dict[str, Any] = {}
        if state.timeout_seconds is not None:
            kwargs["timeout"] = state.timeout_seconds

        if state.protocol == Protocol.IMAPS:
            conn = imaplib.IMAP4_SSL(state.server, state.port, **kwargs)
        else:
            conn = imaplib.IMAP4(state.server, state.port, **kwargs)

        try:
            if state.starttls and state.protocol == Protocol.IMAP:
                conn.starttls()
            conn.login(state.username, state.password.get_secret_value())
        except Exception:
            try:
                conn.shutdown()
            except OSError:
                pass
            raise

        self._conn = conn
        logger.debug("imap_connected", host=state.server, port=state.port)

    def _require_conn(self) -> imaplib.IMAP4:
        if self._conn is None:
            raise ConnectorError("IMAP store is not connected")
        return self._conn

    def folder(self, name: str) -> ImapFolder:
        return ImapFolder(self._require_conn(), name)

    def verify(self) -> None:
        status, data = self._require_conn().noop()
        if status != "OK":
            raise ServiceInterruption(f"IMAP NOOP failed: {data!r}")

    def close(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        conn.logout()
        logger.debug("imap_disconnected", host=self._state.server)


class ImapFolder(MailFolder):
    """An IMAP mailbox opened with EXAMINE; messages are fetched with PEEK."""

    def __init__(self, conn: imaplib.IMAP4, name: str) -> None:
        super().__init__(name)
        self._conn = conn
        self._selected = False

    def open_read_only(self) -> None:
        status, data = self._conn.select(_quote(self.name), readonly=True)
        if status != "OK":
            raise ConnectorError(f"Cannot open folder {self.name!r}: {data!r}")
        self._selected = True

    def close(self) -> None:
        if not self._selected:
            return
        self._selected = False
        self._conn.close()

    def search(
        self,
        term: SearchTerm | None,
        *,
        headers_only: bool = False,
    ) -> list[MailMessage]:
        uids = self._search_uids(term)
        section = "BODY.PEEK[HEADER]" if headers_only else "BODY.PEEK[]"
        results: list[MailMessage] = []
        for uid in uids:
            raw = self._fetch(uid, section)
            if raw is None:
                # Expunged between SEARCH and FETCH
                logger.debug("imap_message_vanished", uid=uid, folder=self.name)
                continue
            results.append(MailMessage(key=uid, raw_bytes=raw))

        logger.debug(
            "imap_search_complete",
            folder=self.name,
            term=repr(term),
            matched=len(results),
        )
        return results

    def _search_uids(self, term: SearchTerm | None) -> list[str]:
        if term is None:
            status, data = self._conn.uid("SEARCH", None, "ALL")
        elif term.value.isascii():
            status, data = self._conn.uid("SEARCH", None, *term.imap_key, _quote(term.value))
        else:
            # imaplib sends a pending literal after the last argument
            self._conn.literal = term.value.encode("utf-8")
            status, data = self._conn.uid("SEARCH", "CHARSET", "UTF-8", *term.imap_key)

        if status != "OK":
            raise imaplib.IMAP4.error(f"SEARCH failed in {self.name!r}: {data!r}")
        if not data or not data[0]:
            return []
        return [uid.decode() for uid in data[0].split()]

    def _fetch(self, uid: str, section: str) -> bytes | None:
        status, msg_data = self._conn.uid("FETCH", uid, f"({section})")
        if status != "OK":
            raise imaplib.IMAP4.error(f"FETCH {uid} failed in {self.name!r}: {msg_data!r}")
        for item in msg_data or []:
            if isinstance(item, tuple) and len(item) >= 2:
                return item[1]
        return None
