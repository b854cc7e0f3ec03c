"""Connector configuration loaded from environment variables.

Uses pydantic-settings so every field can be overridden via env vars,
which is the natural config mechanism in Kubernetes.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings

from .models import JobMode


class RetryConfig(BaseSettings):
    """Retry / backoff settings for service interruptions, driven by Tenacity."""

    model_config = {"env_prefix": "RETRY_"}

    max_attempts: int = Field(default=5, description="Maximum attempts per phase call")
    initial_wait_seconds: float = Field(
        default=1.0,
        description="Initial backoff wait in seconds",
    )
    max_wait_seconds: float = Field(
        default=60.0,
        description="Maximum backoff wait in seconds",
    )
    multiplier: float = Field(default=2.0, description="Exponential backoff multiplier")


class IngestionAPIConfig(BaseSettings):
    """Document ingestion API HTTP client settings."""

    model_config = {"env_prefix": "INGESTION_API_"}

    base_url: str = Field(
        default="http://ingestion-api:8000",
        description="Base URL of the ingestion API (empty disables delivery)",
    )
    timeout_seconds: float = Field(default=30.0, description="HTTP request timeout")
    mtls_cert_path: str | None = Field(
        default=None,
        description="Path to client certificate for mTLS",
    )
    mtls_key_path: str | None = Field(
        default=None,
        description="Path to client private key for mTLS",
    )
    mtls_ca_path: str | None = Field(
        default=None,
        description="Path to CA bundle for mTLS verification",
    )


class ConnectorConfig(BaseSettings):
    """Root configuration for a crawl runner instance.

    Nested configs are populated from their own env-var prefixes.
    """

    model_config = {"env_prefix": "CONNECTOR_"}

    name: str = Field(description="Unique connector name (e.g. email-support-inbox)")
    health_port: int = Field(default=8080, description="Port for K8s health probe endpoints")
    job_mode: JobMode = Field(
        default=JobMode.CONTINUOUS,
        description="Run one crawl cycle and exit, or crawl continuously",
    )
    cycle_interval_seconds: float = Field(
        default=300.0,
        description="Seconds between the start of two crawl cycles in continuous mode",
    )
    idle_poll_seconds: float = Field(
        default=30.0,
        description="Seconds between idle liveness polls of the connector",
    )

    retry: RetryConfig = Field(default_factory=RetryConfig)
    ingestion_api: IngestionAPIConfig = Field(default_factory=IngestionAPIConfig)
