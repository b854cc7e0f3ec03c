"""Email repository connector: crawls an IMAP or POP3 mailbox."""

from .config import (
    ConnectionParams,
    ConnectionProperty,
    ConnectionState,
    EmailConnectorConfig,
    FilterAttribute,
    JobSpecification,
    MetadataField,
    Protocol,
    SearchFilter,
)
from .connector import EmailConnector
from .extractor import DocumentExtractor, ExtractedDocument, build_document
from .search import SearchTerm, resolve_folder, translate
from .seeder import Seeder
from .session import MailSession
from .store import MailFolder, MailMessage, MailStore, open_store
from .versioner import EMAIL_VERSION, get_document_versions

__all__ = [
    "EMAIL_VERSION",
    "ConnectionParams",
    "ConnectionProperty",
    "ConnectionState",
    "DocumentExtractor",
    "EmailConnector",
    "EmailConnectorConfig",
    "ExtractedDocument",
    "FilterAttribute",
    "JobSpecification",
    "MailFolder",
    "MailMessage",
    "MailSession",
    "MailStore",
    "MetadataField",
    "Protocol",
    "SearchFilter",
    "SearchTerm",
    "Seeder",
    "build_document",
    "get_document_versions",
    "open_store",
    "resolve_folder",
    "translate",
]
