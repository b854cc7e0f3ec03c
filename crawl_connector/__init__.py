"""Pull-crawl connector framework.

Public API re-exported here for convenience::

    from crawl_connector import RepositoryConnector, RepositoryDocument, ServiceInterruption
"""

from .activities import DocumentCollector, SeedCollector
from .config import ConnectorConfig, IngestionAPIConfig, RetryConfig
from .errors import ConnectorError, ServiceInterruption
from .health import create_health_app
from .ingestion_client import IngestionClient
from .interface import ProcessActivity, RepositoryConnector, SeedingActivity
from .logging import setup_logging
from .models import (
    ConnectorModel,
    ConnectorStatus,
    CycleReport,
    HealthStatus,
    JobMode,
    RepositoryDocument,
)
from .retry import with_retry
from .runner import CrawlRunner

__all__ = [
    "ConnectorConfig",
    "ConnectorError",
    "ConnectorModel",
    "ConnectorStatus",
    "CrawlRunner",
    "CycleReport",
    "DocumentCollector",
    "HealthStatus",
    "IngestionAPIConfig",
    "IngestionClient",
    "JobMode",
    "ProcessActivity",
    "RepositoryConnector",
    "RepositoryDocument",
    "RetryConfig",
    "SeedCollector",
    "SeedingActivity",
    "ServiceInterruption",
    "create_health_app",
    "setup_logging",
    "with_retry",
]
