"""Tests for crawl_email.extractor."""

from __future__ import annotations

import pytest

from crawl_connector import DocumentCollector, ServiceInterruption
from crawl_email.config import MetadataField
from crawl_email.extractor import DocumentExtractor, build_document, filename_charset
from crawl_email.session import MailSession
from crawl_email.store import MailMessage
from tests.conftest import FakeClock, FakeMailbox, _build_multipart_email, _build_plain_email

ATTACHMENT_EML = (
    b"From: sender@example.com\r\n"
    b"To: recipient@example.com\r\n"
    b"Subject: Files\r\n"
    b"Message-ID: <files@example.com>\r\n"
    b"Date: Sun, 01 Jun 2025 12:00:00 +0000\r\n"
    b"MIME-Version: 1.0\r\n"
    b'Content-Type: multipart/mixed; boundary="XX"\r\n'
    b"\r\n"
    b"--XX\r\n"
    b"Content-Type: text/plain; charset=us-ascii\r\n"
    b"\r\n"
    b"See attached\r\n"
    b"--XX\r\n"
    b'Content-Type: application/pdf; name="=?ISO-8859-1?Q?r=E9sum=E9.pdf?="\r\n'
    b'Content-Disposition: attachment; filename="=?ISO-8859-1?Q?r=E9sum=E9.pdf?="\r\n'
    b"Content-Transfer-Encoding: base64\r\n"
    b"\r\n"
    b"JVBERi0xLjQ=\r\n"
    b"--XX\r\n"
    b"Content-Type: image/png\r\n"
    b"Content-Disposition: inline; filename*=utf-8''logo%C3%A9.png\r\n"
    b"Content-Transfer-Encoding: base64\r\n"
    b"\r\n"
    b"iVBORw0K\r\n"
    b"--XX--\r\n"
)

BROKEN_CHARSET_EML = (
    b"From: sender@example.com\r\n"
    b"Subject: Broken\r\n"
    b"Message-ID: <broken@example.com>\r\n"
    b"MIME-Version: 1.0\r\n"
    b"Content-Type: text/plain; charset=x-no-such-charset\r\n"
    b"\r\n"
    b"undecodable\r\n"
)


def _message(raw: bytes) -> MailMessage:
    return MailMessage(key="1", raw_bytes=raw)


class TestBuildDocument:
    def test_from_and_subject(self):
        raw = _build_plain_email(
            subject="Hi",
            from_addr="Alice <alice@example.com>, Bob <bob@example.com>",
            message_id="<hi@example.com>",
        )
        result = build_document(
            _message(raw), "<hi@example.com>", "1.0", {MetadataField.FROM, MetadataField.SUBJECT}
        )
        fields = result.document.fields
        assert fields["from"] == ["Alice <alice@example.com>", "Bob <bob@example.com>"]
        assert fields["subject"] == ["Hi"]
        assert set(fields) == {"from", "subject"}

    def test_binary_is_raw_message(self, plain_eml_bytes: bytes):
        result = build_document(_message(plain_eml_bytes), "<test-001@example.com>", "1.0", set())
        document = result.document
        assert document.binary == plain_eml_bytes
        assert document.size == len(plain_eml_bytes)
        assert document.mime_type == "message/rfc822"
        assert document.stream().read() == plain_eml_bytes
        assert document.fields == {}

    def test_uri_is_subject_and_identifier(self, plain_eml_bytes: bytes):
        result = build_document(_message(plain_eml_bytes), "<test-001@example.com>", "1.0", set())
        assert result.uri == "Test Subject<test-001@example.com>"
        assert result.identifier == "<test-001@example.com>"
        assert result.version == "1.0"

    def test_to_date_and_body(self, plain_eml_bytes: bytes):
        result = build_document(
            _message(plain_eml_bytes),
            "<test-001@example.com>",
            "1.0",
            {MetadataField.TO, MetadataField.DATE, MetadataField.BODY},
        )
        fields = result.document.fields
        assert fields["to"] == ["recipient@example.com"]
        assert fields["date"] == ["2025-06-01T12:00:00+00:00"]
        assert [b.strip() for b in fields["body"]] == ["Hello, World!"]

    def test_multipart_body_excludes_attachments(self, multipart_eml_bytes: bytes):
        result = build_document(
            _message(multipart_eml_bytes), "<multi-001@example.com>", "1.0", {MetadataField.BODY}
        )
        assert [b.strip() for b in result.document.fields["body"]] == ["Plain body"]

    def test_attachment_fields(self):
        result = build_document(
            _message(ATTACHMENT_EML),
            "<files@example.com>",
            "1.0",
            {MetadataField.ATTACHMENT_ENCODING, MetadataField.ATTACHMENT_MIMETYPE},
        )
        fields = result.document.fields
        assert fields["mimetype"] == ["application/pdf", "image/png"]
        assert fields["encoding"] == ["iso-8859-1", "utf-8"]

    def test_ascii_attachment_names(self, multipart_eml_bytes: bytes):
        result = build_document(
            _message(multipart_eml_bytes),
            "<multi-001@example.com>",
            "1.0",
            {MetadataField.ATTACHMENT_ENCODING, MetadataField.ATTACHMENT_MIMETYPE},
        )
        fields = result.document.fields
        assert fields["mimetype"] == ["application/pdf", "text/csv"]
        assert fields["encoding"] == ["us-ascii", "us-ascii"]

    def test_missing_headers_add_nothing(self):
        raw = b"Message-ID: <bare@x>\r\n\r\nno headers\r\n"
        result = build_document(
            _message(raw), "<bare@x>", "1.0", {MetadataField.FROM, MetadataField.DATE}
        )
        assert "date" not in result.document.fields
        assert result.document.fields.get("from", []) == []


class TestFilenameCharset:
    def test_default(self):
        part = _message(b"Content-Disposition: attachment; filename=a.txt\r\n\r\n").message
        assert filename_charset(part) == "us-ascii"

    def test_rfc2231(self):
        part = _message(
            b"Content-Disposition: attachment; filename*=KOI8-R''%F0%F2.txt\r\n\r\n"
        ).message
        assert filename_charset(part) == "koi8-r"


@pytest.fixture
def inbox() -> FakeMailbox:
    return FakeMailbox(
        {
            "INBOX": [
                _build_plain_email(subject="First", message_id="<one@example.com>"),
                BROKEN_CHARSET_EML,
                _build_plain_email(subject="Third", message_id="<three@example.com>"),
            ]
        }
    )


@pytest.fixture
def extractor(imap_state, inbox: FakeMailbox, clock: FakeClock) -> DocumentExtractor:
    session = MailSession(imap_state, clock=clock, store_factory=inbox.factory)
    return DocumentExtractor(session)


class TestDocumentExtractor:
    @pytest.mark.asyncio
    async def test_extract_and_ingest(self, extractor: DocumentExtractor, inbox: FakeMailbox):
        sink = DocumentCollector()
        results = await extractor.extract(
            ["<one@example.com>", "<three@example.com>"],
            ["1.0", "1.0"],
            {MetadataField.SUBJECT},
            sink,
        )
        assert [r.identifier for r in results] == ["<one@example.com>", "<three@example.com>"]
        assert [d.uri for d in sink.documents] == [
            "First<one@example.com>",
            "Third<three@example.com>",
        ]
        assert sink.documents[1].document.fields["subject"] == ["Third"]
        # One session for the whole batch
        assert inbox.connects == 1
        assert inbox.store_closes == 1

    @pytest.mark.asyncio
    async def test_output_is_subset_of_input(self, extractor: DocumentExtractor):
        identifiers = ["<one@example.com>", "<gone@example.com>"]
        results = await extractor.extract(identifiers, ["1.0", "1.0"], set(), DocumentCollector())
        assert {r.identifier for r in results} <= set(identifiers)
        assert [r.identifier for r in results] == ["<one@example.com>"]

    @pytest.mark.asyncio
    async def test_bad_message_does_not_abort_batch(self, extractor: DocumentExtractor):
        sink = DocumentCollector()
        results = await extractor.extract(
            ["<one@example.com>", "<broken@example.com>", "<three@example.com>"],
            ["1.0"] * 3,
            {MetadataField.BODY},
            sink,
        )
        assert [r.identifier for r in results] == ["<one@example.com>", "<three@example.com>"]
        assert len(sink.documents) == 2

    @pytest.mark.asyncio
    async def test_scan_only_skips_ingestion(self, extractor: DocumentExtractor):
        sink = DocumentCollector()
        results = await extractor.extract(
            ["<one@example.com>", "<three@example.com>"],
            ["1.0", "1.0"],
            set(),
            sink,
            scan_only=[True, False],
        )
        assert len(results) == 2
        assert [d.identifier for d in sink.documents] == ["<three@example.com>"]

    @pytest.mark.asyncio
    async def test_transport_failure_aborts_batch(
        self, extractor: DocumentExtractor, inbox: FakeMailbox
    ):
        inbox.search_error = OSError("connection reset")
        with pytest.raises(ServiceInterruption):
            await extractor.extract(["<one@example.com>"], ["1.0"], set(), DocumentCollector())
        assert inbox.store_closes == 1

    @pytest.mark.asyncio
    async def test_length_mismatch(self, extractor: DocumentExtractor):
        with pytest.raises(ValueError, match="versions"):
            await extractor.extract(["<one@example.com>"], [], set(), DocumentCollector())
        with pytest.raises(ValueError, match="scan-only"):
            await extractor.extract(
                ["<one@example.com>"], ["1.0"], set(), DocumentCollector(), scan_only=[]
            )

    @pytest.mark.asyncio
    async def test_empty_batch(self, extractor: DocumentExtractor, inbox: FakeMailbox):
        assert await extractor.extract([], [], set(), DocumentCollector()) == []
