"""Entry point for the email connector package.

Usage::

    python -m crawl_email run     # crawl until stopped (or one cycle with CONNECTOR_JOB_MODE=once)
    python -m crawl_email check   # test the mailbox connection and exit
"""

from __future__ import annotations

import asyncio
import sys


def main() -> None:
    if len(sys.argv) < 2 or sys.argv[1] not in ("run", "check"):
        print("Usage: python -m crawl_email <run|check>", file=sys.stderr)
        sys.exit(1)

    mode = sys.argv[1]

    from crawl_connector import CrawlRunner, setup_logging

    from .config import EmailConnectorConfig
    from .connector import EmailConnector

    config = EmailConnectorConfig(name="email")
    connector = EmailConnector(session_ttl_ms=config.session_ttl_ms)

    if mode == "run":
        runner = CrawlRunner(connector, config, params=config.connection, spec=config.job)
        asyncio.run(runner.run())

    elif mode == "check":
        setup_logging(connector_name=config.name)
        connector.connect(config.connection)
        result = asyncio.run(connector.check())
        print(result)
        sys.exit(0 if result == "Connection working" else 2)


if __name__ == "__main__":
    main()
