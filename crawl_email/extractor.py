"""Phase 3: fetch messages by identifier and turn them into documents.

Only top-level MIME parts are inspected: body text comes from parts with
no Content-Disposition, attachment hints from parts marked ``attachment``
or ``inline``.
"""

from __future__ import annotations

import asyncio
import email.message
import re
from collections.abc import Callable, Collection, Sequence

import structlog
from pydantic import BaseModel, Field

from crawl_connector import ProcessActivity, RepositoryDocument

from .config import DEFAULT_FOLDER, MetadataField
from .search import MessageIDTerm
from .session import MailSession
from .store import MailMessage, classify_store_error

logger = structlog.get_logger()

ENCODING_FIELD = "encoding"
MIMETYPE_FIELD = "mimetype"
DEFAULT_FILENAME_CHARSET = "us-ascii"

_ENCODED_WORD = re.compile(r"=\?([^?*]+)(?:\*[^?]*)?\?[bq]\?", re.IGNORECASE)
_RFC2231_PARAM = re.compile(r"\b(?:file)?name\*(?:0\*)?\s*=\s*\"?([^']*)'", re.IGNORECASE)


class ExtractedDocument(BaseModel):
    """A document ready for the ingestion sink."""

    identifier: str = Field(description="Message-ID of the source message")
    version: str = Field(description="Version string paired with the identifier")
    uri: str = Field(description="Subject followed by the message identifier")
    document: RepositoryDocument


# ----------------------------------------------------------------------
# MIME helpers
# ----------------------------------------------------------------------


def _top_level_parts(msg: email.message.EmailMessage) -> list[email.message.EmailMessage]:
    if msg.is_multipart():
        return list(msg.iter_parts())
    return [msg]


def _attachment_parts(msg: email.message.EmailMessage) -> list[email.message.EmailMessage]:
    if not msg.is_multipart():
        return []
    return [
        part
        for part in msg.iter_parts()
        if part.get_content_disposition() in ("attachment", "inline")
    ]


def _raw_header(part: email.message.Message, name: str) -> str:
    """The undecoded header value, so encoded-word charsets stay visible."""
    for key, value in part.raw_items():
        if key.lower() == name:
            return str(value)
    return ""


def filename_charset(part: email.message.Message) -> str:
    """Charset named by the attachment's file name encoding, if any."""
    for header in ("content-disposition", "content-type"):
        raw = _raw_header(part, header)
        match = _RFC2231_PARAM.search(raw) or _ENCODED_WORD.search(raw)
        if match and match.group(1):
            return match.group(1).lower()
    return DEFAULT_FILENAME_CHARSET


# ----------------------------------------------------------------------
# Field extractors
# ----------------------------------------------------------------------


def _extract_to(message: MailMessage, document: RepositoryDocument) -> None:
    document.add_field(MetadataField.TO.value, message.to_addresses)


def _extract_from(message: MailMessage, document: RepositoryDocument) -> None:
    document.add_field(MetadataField.FROM.value, message.from_addresses)


def _extract_subject(message: MailMessage, document: RepositoryDocument) -> None:
    document.add_field(MetadataField.SUBJECT.value, message.subject)


def _extract_body(message: MailMessage, document: RepositoryDocument) -> None:
    # HTML is attached with its markup
    for part in _top_level_parts(message.message):
        if part.get_content_disposition() is not None:
            continue
        if part.get_content_type() in ("text/plain", "text/html"):
            document.add_field(MetadataField.BODY.value, part.get_content())


def _extract_date(message: MailMessage, document: RepositoryDocument) -> None:
    sent = message.sent_date
    if sent is not None:
        document.add_field(MetadataField.DATE.value, sent.isoformat())


def _extract_attachment_encoding(message: MailMessage, document: RepositoryDocument) -> None:
    for part in _attachment_parts(message.message):
        document.add_field(ENCODING_FIELD, filename_charset(part))


def _extract_attachment_mimetype(message: MailMessage, document: RepositoryDocument) -> None:
    for part in _attachment_parts(message.message):
        document.add_field(MIMETYPE_FIELD, part.get_content_type())


FieldExtractor = Callable[[MailMessage, RepositoryDocument], None]

FIELD_EXTRACTORS: dict[MetadataField, FieldExtractor] = {
    MetadataField.TO: _extract_to,
    MetadataField.FROM: _extract_from,
    MetadataField.SUBJECT: _extract_subject,
    MetadataField.BODY: _extract_body,
    MetadataField.DATE: _extract_date,
    MetadataField.ATTACHMENT_ENCODING: _extract_attachment_encoding,
    MetadataField.ATTACHMENT_MIMETYPE: _extract_attachment_mimetype,
}


def build_document(
    message: MailMessage,
    identifier: str,
    version: str,
    metadata: Collection[MetadataField],
) -> ExtractedDocument:
    """Assemble the document for one message with the requested fields."""
    document = RepositoryDocument(file_name=message.file_name)
    document.set_binary(message.raw_bytes, mime_type="message/rfc822")

    for field in MetadataField:
        if field in metadata:
            FIELD_EXTRACTORS[field](message, document)

    return ExtractedDocument(
        identifier=identifier,
        version=version,
        uri=f"{message.subject}{MessageIDTerm(identifier)}",
        document=document,
    )


# ----------------------------------------------------------------------
# Batch extraction
# ----------------------------------------------------------------------


class DocumentExtractor:
    """Extracts a batch of messages over a single mailbox session.

    A message whose content cannot be decoded is logged and skipped; the
    rest of the batch continues.  Losing the connection aborts the batch
    with :class:`ServiceInterruption`.
    """

    def __init__(self, session: MailSession) -> None:
        self._session = session

    async def extract(
        self,
        identifiers: Sequence[str],
        versions: Sequence[str],
        metadata: Collection[MetadataField],
        activities: ProcessActivity,
        *,
        scan_only: Sequence[bool] | None = None,
        folder_name: str = DEFAULT_FOLDER,
    ) -> list[ExtractedDocument]:
        if len(versions) != len(identifiers):
            raise ValueError(
                f"Got {len(versions)} versions for {len(identifiers)} identifiers"
            )
        if scan_only is None:
            scan_only = [False] * len(identifiers)
        elif len(scan_only) != len(identifiers):
            raise ValueError(
                f"Got {len(scan_only)} scan-only flags for {len(identifiers)} identifiers"
            )

        extracted: list[ExtractedDocument] = []
        async with self._session.scoped(folder_name) as folder:
            for identifier, version, skip_ingest in zip(identifiers, versions, scan_only):
                logger.debug("processing_document", identifier=identifier)
                try:
                    matches = await asyncio.to_thread(folder.search, MessageIDTerm(identifier))
                except Exception as exc:
                    raise classify_store_error(exc) from exc

                for message in matches:
                    if message.message_id != identifier:
                        continue
                    try:
                        result = build_document(message, identifier, version, metadata)
                    except Exception:
                        logger.exception("email_extraction_failed", identifier=identifier)
                        continue

                    extracted.append(result)
                    if skip_ingest:
                        logger.debug("document_scan_only", identifier=identifier)
                        continue
                    await activities.ingest_document(
                        identifier, version, result.uri, result.document
                    )

        logger.info(
            "extraction_complete",
            requested=len(identifiers),
            extracted=len(extracted),
        )
        return extracted
