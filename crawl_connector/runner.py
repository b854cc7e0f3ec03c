"""CrawlRunner: the scheduler that drives a repository connector.

One crawl cycle is seed → version → process (in batches).  Between
cycles the runner idles and polls the connector so it can release
resources it no longer needs.
"""

from __future__ import annotations

import asyncio
import signal
import time
from datetime import UTC, datetime
from typing import Any

import structlog
import uvicorn

from .activities import SeedCollector
from .config import ConnectorConfig
from .errors import ConnectorError
from .health import create_health_app
from .ingestion_client import IngestionClient
from .interface import ProcessActivity, RepositoryConnector
from .logging import setup_logging
from .models import ConnectorStatus, CycleReport, JobMode
from .retry import with_retry

logger = structlog.get_logger()


def _now_ms() -> int:
    return int(time.time() * 1000)


class CrawlRunner:
    """Runs crawl cycles for one connector instance.

    ``run()`` starts the following concurrently via
    :class:`asyncio.TaskGroup`:

    * the crawl loop (cycles plus idle polls)
    * FastAPI health server (for K8s probes)

    Phase calls that raise :class:`ServiceInterruption` are retried with
    exponential backoff; any other :class:`ConnectorError` fails the cycle.
    """

    def __init__(
        self,
        connector: RepositoryConnector,
        config: ConnectorConfig,
        *,
        params: Any,
        spec: Any,
        sink: ProcessActivity | None = None,
    ) -> None:
        self.connector = connector
        self.config = config
        self.status: ConnectorStatus = ConnectorStatus.STARTING
        self.start_time: float = time.monotonic()
        self.last_cycle: CycleReport | None = None
        self.last_cycle_at: datetime | None = None

        self._params = params
        self._spec = spec
        self._ingestion_client = IngestionClient(config.ingestion_api)
        self._sink: ProcessActivity = sink or self._ingestion_client
        self._shutdown_event = asyncio.Event()
        # Seeding windows of successive cycles never overlap.
        self._seed_start_time = 0

    # ------------------------------------------------------------------
    # One crawl cycle
    # ------------------------------------------------------------------

    async def run_cycle(self) -> CycleReport:
        """Seed, version and process every discovered document once."""
        retrying = with_retry(self.config.retry)
        job_mode = self.config.job_mode
        end_time = _now_ms()

        seeds = SeedCollector()
        await retrying(self.connector.add_seed_documents)(
            seeds, self._spec, self._seed_start_time, end_time, job_mode
        )
        identifiers = seeds.seeds
        report = CycleReport(seeds=len(identifiers))

        if identifiers:
            versions = await self.connector.get_document_versions(
                identifiers, [None] * len(identifiers), self._spec, job_mode
            )
            batch_size = self.connector.max_documents_per_batch() or len(identifiers)
            for offset in range(0, len(identifiers), batch_size):
                batch = identifiers[offset : offset + batch_size]
                batch_versions = versions[offset : offset + batch_size]
                report.documents += await retrying(self.connector.process_documents)(
                    batch,
                    batch_versions,
                    self._sink,
                    self._spec,
                    [False] * len(batch),
                    job_mode,
                )
                report.batches += 1

        self._seed_start_time = end_time
        self.last_cycle = report
        self.last_cycle_at = datetime.now(UTC)
        logger.info(
            "crawl_cycle_complete",
            seeds=report.seeds,
            batches=report.batches,
            documents=report.documents,
        )
        return report

    # ------------------------------------------------------------------
    # Crawl loop
    # ------------------------------------------------------------------

    async def _run_crawl_loop(self) -> None:
        logger.info("crawl_loop_started", job_mode=self.config.job_mode.value)
        self.status = ConnectorStatus.RUNNING
        try:
            while not self._shutdown_event.is_set():
                try:
                    await self.run_cycle()
                    self.status = ConnectorStatus.RUNNING
                except ConnectorError:
                    self.status = ConnectorStatus.DEGRADED
                    logger.exception("crawl_cycle_failed")
                except Exception:
                    # Only shutdown ends a continuous loop
                    self.status = ConnectorStatus.DEGRADED
                    logger.exception("crawl_cycle_crashed")

                if self.config.job_mode == JobMode.ONCE:
                    self._shutdown_event.set()
                    break
                await self._idle_until_next_cycle()
        finally:
            logger.info("crawl_loop_stopped")

    async def _idle_until_next_cycle(self) -> None:
        """Wait for the next cycle, polling the connector at the idle interval."""
        deadline = time.monotonic() + self.config.cycle_interval_seconds
        while not self._shutdown_event.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=min(self.config.idle_poll_seconds, remaining),
                )
            except TimeoutError:
                await self.connector.poll()

    # ------------------------------------------------------------------
    # Health server
    # ------------------------------------------------------------------

    async def _run_health_server(self) -> None:
        """Start the FastAPI health server and shut it down on signal."""
        app = create_health_app(self)
        config = uvicorn.Config(
            app,
            host="0.0.0.0",
            port=self.config.health_port,
            log_level="warning",
        )
        server = uvicorn.Server(config)

        # Run until the shutdown event fires
        serve_task = asyncio.create_task(server.serve())
        await self._shutdown_event.wait()
        server.should_exit = True
        await serve_task

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()

        def _handle(sig: signal.Signals) -> None:
            logger.info("shutdown_signal_received", signal=sig.name)
            self._shutdown_event.set()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, _handle, sig)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Connect the connector and crawl until shutdown (or one cycle).

        This is the single entry point::

            asyncio.run(runner.run())
        """
        setup_logging(connector_name=self.config.name)
        self._install_signal_handlers()
        self.start_time = time.monotonic()

        logger.info("runner_starting", connector=self.config.name)

        self.connector.connect(self._params)
        await self._ingestion_client.start()

        try:
            async with asyncio.TaskGroup() as tg:
                tg.create_task(self._run_crawl_loop())
                tg.create_task(self._run_health_server())
        except* Exception:
            logger.exception("runner_task_group_error", connector=self.config.name)
        finally:
            self.status = ConnectorStatus.STOPPING
            await self.connector.disconnect()
            await self._ingestion_client.stop()
            self.status = ConnectorStatus.STOPPED
            logger.info("runner_stopped", connector=self.config.name)
