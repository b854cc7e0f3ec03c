"""Filter translator: declarative search filters → mailbox search terms.

Each term knows how to express itself as IMAP ``SEARCH`` criteria (the
server does the matching) and how to match a fetched message on the
client (used by stores without server-side search).  Both follow the
IMAP rule: case-insensitive substring match.
"""

from __future__ import annotations

import abc
from collections.abc import Iterable
from dataclasses import dataclass
from typing import ClassVar

import structlog

from .config import DEFAULT_FOLDER, FilterAttribute, SearchFilter
from .store import MailFolder, MailMessage

logger = structlog.get_logger()


def _contains(haystack: str, needle: str) -> bool:
    return needle.casefold() in haystack.casefold()


@dataclass(frozen=True)
class SearchTerm(abc.ABC):
    value: str

    imap_key: ClassVar[tuple[str, ...]] = ()

    @abc.abstractmethod
    def match(self, message: MailMessage) -> bool: ...


class SubjectTerm(SearchTerm):
    imap_key = ("SUBJECT",)

    def match(self, message: MailMessage) -> bool:
        return _contains(message.subject, self.value)


class FromStringTerm(SearchTerm):
    imap_key = ("FROM",)

    def match(self, message: MailMessage) -> bool:
        return any(_contains(address, self.value) for address in message.from_addresses)


class RecipientStringTerm(SearchTerm):
    """Matches TO recipients only."""

    imap_key = ("TO",)

    def match(self, message: MailMessage) -> bool:
        return any(_contains(address, self.value) for address in message.to_addresses)


class BodyTerm(SearchTerm):
    imap_key = ("BODY",)

    def match(self, message: MailMessage) -> bool:
        return any(_contains(text, self.value) for text in message.text_parts())


class MessageIDTerm(SearchTerm):
    """Locates a message by its ``Message-ID`` header (exact on the client)."""

    imap_key = ("HEADER", "Message-ID")

    def match(self, message: MailMessage) -> bool:
        return message.message_id == self.value

    def __str__(self) -> str:
        return self.value


TERMS: dict[FilterAttribute, type[SearchTerm]] = {
    FilterAttribute.SUBJECT: SubjectTerm,
    FilterAttribute.FROM: FromStringTerm,
    FilterAttribute.TO: RecipientStringTerm,
    FilterAttribute.BODY: BodyTerm,
}


def translate(search_filter: SearchFilter) -> SearchTerm:
    """Build the search term for one non-folder filter."""
    try:
        term_class = TERMS[search_filter.name]
    except KeyError:
        raise ValueError(
            f"{search_filter.name.value!r} filters select a folder, they are not search terms"
        ) from None
    return term_class(search_filter.value)


def resolve_folder(filters: Iterable[SearchFilter]) -> str:
    """Return the folder selected by the filters (the last one wins)."""
    folders = [f.value for f in filters if f.name == FilterAttribute.FOLDER]
    if not folders:
        return DEFAULT_FOLDER
    if len(set(folders)) > 1:
        logger.warning("multiple_folders_configured", folders=folders, using=folders[-1])
    return folders[-1]


def search_filters(filters: Iterable[SearchFilter]) -> list[SearchFilter]:
    """The filters that are search predicates, in configured order."""
    return [f for f in filters if f.name != FilterAttribute.FOLDER]


def search(
    folder: MailFolder,
    search_filter: SearchFilter | None,
    *,
    headers_only: bool = False,
) -> list[MailMessage]:
    """Run one filter against an open folder; ``None`` matches everything."""
    term = translate(search_filter) if search_filter is not None else None
    logger.debug(
        "mail_search",
        folder=folder.name,
        attribute=search_filter.name.value if search_filter else None,
        value=search_filter.value if search_filter else None,
    )
    return folder.search(term, headers_only=headers_only)
