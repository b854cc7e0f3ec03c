"""Phase 1: discover message identifiers matching the job's filters."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import structlog

from crawl_connector import JobMode, SeedingActivity

from .config import SearchFilter
from .search import resolve_folder, search, search_filters
from .session import MailSession
from .store import classify_store_error

logger = structlog.get_logger()


class Seeder:
    """Runs every search filter in its own session and emits the matches.

    Filters are ORed: a message is seeded if any filter matches it.  With
    no search filters every message in the folder is seeded.
    """

    def __init__(self, session: MailSession) -> None:
        self._session = session

    async def seed(
        self,
        filters: Sequence[SearchFilter],
        activities: SeedingActivity,
        start_time: int,
        end_time: int,
        job_mode: JobMode,
    ) -> int:
        """Emit seeds to *activities*.  Returns the number of distinct seeds.

        The ``[start_time, end_time)`` window is advisory; mailbox searches
        are not narrowed by it.
        """
        folder_name = resolve_folder(filters)
        predicates: list[SearchFilter | None] = list(search_filters(filters)) or [None]
        logger.info(
            "seeding_started",
            folder=folder_name,
            filters=len(predicates),
            start_time=start_time,
            end_time=end_time,
            job_mode=job_mode.value,
        )

        emitted: set[str] = set()
        for search_filter in predicates:
            async with self._session.scoped(folder_name) as folder:
                try:
                    messages = await asyncio.to_thread(
                        search, folder, search_filter, headers_only=True
                    )
                except Exception as exc:
                    raise classify_store_error(exc) from exc

                for message in messages:
                    identifier = message.message_id
                    if identifier is None:
                        logger.warning("message_without_id_skipped", key=message.key, folder=folder.name)
                        continue
                    if identifier in emitted:
                        continue
                    emitted.add(identifier)
                    await activities.add_seed_document(identifier)

        logger.info("seeding_complete", folder=folder_name, seeds=len(emitted))
        return len(emitted)
