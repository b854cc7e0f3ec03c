"""Mailbox session manager.

Owns the lazily connected store and the open folder for one connector
instance.  Blocking store calls run in ``asyncio.to_thread()`` so the
runner's event loop stays responsive.

Lifecycle::

    async with session.scoped("INBOX") as folder:
        ...                      # folder is open read-only
    # folder and store are closed here, whatever happened inside

An idle session is torn down by :meth:`MailSession.check_liveness` once
its expiry (``open time + ttl``) has been reached.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

import structlog

from crawl_connector import ConnectorError, ServiceInterruption

from .config import DEFAULT_FOLDER, SESSION_TTL_MS, ConnectionState
from .store import MailFolder, MailStore, classify_store_error, open_store

logger = structlog.get_logger()


def monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


class MailSession:
    def __init__(
        self,
        state: ConnectionState,
        *,
        ttl_ms: int = SESSION_TTL_MS,
        clock: Callable[[], int] = monotonic_ms,
        store_factory: Callable[[ConnectionState], MailStore] = open_store,
    ) -> None:
        self._state = state
        self._ttl_ms = ttl_ms
        self._clock = clock
        self._store_factory = store_factory
        self._store: MailStore | None = None
        self._folder: MailFolder | None = None
        self.expires_at: int | None = None

    @property
    def is_open(self) -> bool:
        return self._store is not None

    @property
    def folder(self) -> MailFolder:
        if self._folder is None:
            raise ConnectorError("Mail session is not open")
        return self._folder

    def resolve_folder_name(self, folder_name: str) -> str:
        """Stores without folders always use INBOX."""
        return folder_name if self._state.protocol.has_folders else DEFAULT_FOLDER

    # ------------------------------------------------------------------
    # Open / close
    # ------------------------------------------------------------------

    async def open(self, folder_name: str = DEFAULT_FOLDER) -> MailFolder:
        """Connect and open *folder_name* read-only unless already open.

        Re-opening the folder that is already open is a no-op and keeps
        the current expiry.  Failures are raised as
        :class:`ServiceInterruption` (transient) or :class:`ConnectorError`
        and leave the session closed.
        """
        name = self.resolve_folder_name(folder_name)
        if self._folder is not None:
            if self._folder.name == name:
                return self._folder
            logger.info("mail_session_switching_folder", old=self._folder.name, new=name)
            await self.close()

        try:
            await asyncio.to_thread(self._open_sync, name)
        except Exception as exc:
            error = classify_store_error(exc)
            logger.warning(
                "mail_session_open_failed",
                server=self._state.server,
                folder=name,
                retryable=isinstance(error, ServiceInterruption),
                error=str(error),
            )
            raise error from exc

        logger.debug(
            "mail_session_opened",
            server=self._state.server,
            protocol=self._state.protocol.value,
            folder=name,
            expires_at=self.expires_at,
        )
        return self.folder

    def _open_sync(self, name: str) -> None:
        store = self._store_factory(self._state)
        try:
            store.connect()
            folder = store.folder(name)
            folder.open_read_only()
        except Exception:
            self._close_sync(None, store)
            raise
        # Set with the handles: a cancelled open() still finishes in its thread
        self._store, self._folder = store, folder
        self.expires_at = self._clock() + self._ttl_ms

    async def close(self) -> None:
        """Close folder then store.  Never raises; always clears both handles."""
        folder, store = self._folder, self._store
        self._folder, self._store, self.expires_at = None, None, None
        if folder is None and store is None:
            return
        await asyncio.to_thread(self._close_sync, folder, store)
        logger.debug("mail_session_closed", server=self._state.server)

    @staticmethod
    def _close_sync(folder: MailFolder | None, store: MailStore | None) -> None:
        if folder is not None:
            try:
                folder.close()
            except Exception as exc:
                logger.debug("mail_folder_close_failed", folder=folder.name, error=str(exc))
        if store is not None:
            try:
                store.close()
            except Exception as exc:
                logger.debug("mail_store_close_failed", error=str(exc))

    @asynccontextmanager
    async def scoped(self, folder_name: str = DEFAULT_FOLDER) -> AsyncIterator[MailFolder]:
        """Open for one unit of work; closed on every exit path."""
        folder = await self.open(folder_name)
        try:
            yield folder
        finally:
            await self.close()

    # ------------------------------------------------------------------
    # Idle teardown and connection test
    # ------------------------------------------------------------------

    async def check_liveness(self) -> bool:
        """Close the session if its expiry has been reached.  Returns True if closed."""
        if not self.is_open or self.expires_at is None:
            return False
        now = self._clock()
        if now < self.expires_at:
            return False
        logger.info("mail_session_expired", server=self._state.server, expired_at=self.expires_at)
        await self.close()
        return True

    async def test_connection(self) -> None:
        """Connect a throwaway store, verify it, and close it again.

        Raises the classified error on failure.  Failures while closing
        the throwaway store are only logged.
        """

        def _probe() -> None:
            store = self._store_factory(self._state)
            try:
                store.connect()
                store.verify()
            finally:
                try:
                    store.close()
                except Exception as exc:
                    logger.warning("mail_store_close_failed", error=str(exc))

        try:
            await asyncio.to_thread(_probe)
        except Exception as exc:
            raise classify_store_error(exc) from exc
