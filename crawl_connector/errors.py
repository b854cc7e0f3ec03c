"""Error taxonomy shared by all repository connectors.

The runner distinguishes two outcomes of a failed phase call:

* :class:`ServiceInterruption`: the repository is temporarily unreachable;
  the phase is retried after a backoff.
* :class:`ConnectorError`: anything else; the crawl cycle fails and the
  message is reported as-is.
"""

from __future__ import annotations


class ConnectorError(Exception):
    """Fatal, non-retryable connector failure (bad configuration, misuse)."""


class ServiceInterruption(ConnectorError):
    """Transient failure talking to the repository; safe to retry later."""

    def __init__(self, message: str, *, retry_after_seconds: float = 60.0) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds
