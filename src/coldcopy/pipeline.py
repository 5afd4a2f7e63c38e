"""Core orchestration logic for the coldcopy backup run."""

import asyncio
import datetime
import logging
from typing import TYPE_CHECKING, List, Optional, Set

import aiohttp
from aiobotocore.session import AioSession, get_session
from botocore.config import Config as BotoConfig

from coldcopy.buckets import (
    BucketDescriptor,
    BucketPolicy,
    bucket_name_for,
    ensure_bucket,
)
from coldcopy.compression import GzipStreamCompressor
from coldcopy.config import Config
from coldcopy.destination import DestinationStore
from coldcopy.errors import ErrorAggregator
from coldcopy.exceptions import ListStalledError
from coldcopy.lister import list_all_objects
from coldcopy.progress import Notifier, ProgressCounter, RunReporter, RunSummary
from coldcopy.swift import SwiftClient
from coldcopy.webhook import WebhookNotifier
from coldcopy.worker import TransferOutcome, TransferSettings, transfer_and_store

if TYPE_CHECKING:
    from types_aiobotocore_s3.client import S3Client

logger: logging.Logger = logging.getLogger(__name__)


class BackupPipeline:
    """Orchestrates the entire backup from start to finish."""

    def __init__(
        self,
        config: Config,
        shutdown_event: asyncio.Event,
        reporter: Optional[RunReporter] = None,
        run_date: Optional[datetime.date] = None,
    ) -> None:
        """
        Initializes the pipeline with the given configuration.

        Args:
            config (Config): The application configuration.
            shutdown_event (asyncio.Event): Event to signal graceful shutdown.
            reporter (RunReporter, optional): Result reporter; a default one
                is created if omitted.
            run_date (datetime.date, optional): Date used in bucket names; today
                if omitted. Fixed for the whole run.
        """
        self._config: Config = config
        self._shutdown_event: asyncio.Event = shutdown_event
        self._reporter: RunReporter = reporter or RunReporter()
        self._run_date: datetime.date = run_date or datetime.date.today()
        self._session: AioSession = get_session()
        self._policy: BucketPolicy = BucketPolicy.from_config(config.destination)
        self._settings: TransferSettings = TransferSettings(
            chunk_size=config.app.chunk_size_bytes,
            relay_capacity=config.app.relay_capacity_bytes,
            compression_level=config.app.compression_level,
        )

    async def run(self) -> RunSummary:
        """
        Executes the full backup.

        Opens the source HTTP session and the destination S3 client, then
        backs up every container in turn.

        Returns:
            RunSummary: The run totals.
        """
        logger.info("Starting coldcopy backup.")
        app = self._config.app
        boto_config: BotoConfig = BotoConfig(
            signature_version="s3v4",
            max_pool_connections=app.concurrency + 10,
            retries={"max_attempts": app.transfer_max_attempts},
        )
        timeout: aiohttp.ClientTimeout = aiohttp.ClientTimeout(
            total=None, sock_read=app.http_timeout_s
        )
        connector: aiohttp.TCPConnector = aiohttp.TCPConnector(
            limit=app.concurrency + 10
        )
        async with (
            aiohttp.ClientSession(timeout=timeout, connector=connector) as http,
            self._session.create_client(
                "s3",
                **self._config.destination.as_boto_dict(),
                config=boto_config,
            ) as dest_client,
        ):
            source: SwiftClient = SwiftClient(http, self._config.source)
            destination: DestinationStore = self._build_destination(dest_client)
            notifier: Optional[WebhookNotifier] = None
            if self._config.webhook.enabled:
                notifier = WebhookNotifier(http, self._config.webhook)
            return await self.backup(source, destination, notifier)

    def _build_destination(self, client: "S3Client") -> DestinationStore:
        return DestinationStore(
            client,
            part_size=self._config.app.part_size_bytes,
            storage_class=self._policy.storage_class,
            content_encoding=GzipStreamCompressor.content_encoding,
        )

    async def backup(
        self,
        source: SwiftClient,
        destination: DestinationStore,
        notifier: Optional[Notifier] = None,
    ) -> RunSummary:
        """
        Backs up every source container, one container at a time.

        Fatal setup errors (authentication, listing, bucket policy mismatch)
        propagate and abort the run. Per-object failures are recorded and
        reported after each container.

        Args:
            source (SwiftClient): The source store client.
            destination (DestinationStore): The destination store.
            notifier (Notifier, optional): Receives the run summary.

        Returns:
            RunSummary: The run totals.
        """
        credential = await source.authenticate()
        containers: List[str] = await source.list_containers(credential)
        logger.info(f"Found {len(containers)} containers: {', '.join(containers)}")

        semaphore: asyncio.Semaphore = asyncio.Semaphore(self._config.app.concurrency)
        for container in containers:
            if self._shutdown_event.is_set():
                logger.warning("Shutdown initiated, skipping remaining containers.")
                break
            await self._backup_container(
                source, credential, destination, container, semaphore
            )

        if self._shutdown_event.is_set():
            logger.warning("Backup interrupted before completion.")
        return await self._reporter.dispatch(notifier)

    async def _backup_container(
        self,
        source: SwiftClient,
        credential: object,
        destination: DestinationStore,
        container: str,
        semaphore: asyncio.Semaphore,
    ) -> None:
        """
        Provisions the container's bucket and transfers all of its objects.

        Returns only after every transfer of the container has finished, so
        containers never overlap.
        """
        bucket_name: str = bucket_name_for(
            container,
            day=self._run_date,
            prefix=self._config.destination.bucket_prefix,
        )
        logger.info(f"Ensuring bucket '{bucket_name}' for container '{container}'.")
        bucket: BucketDescriptor = await ensure_bucket(
            destination, bucket_name, self._policy
        )

        try:
            names, total = await list_all_objects(
                source,
                credential,
                container,
                max_pages=self._config.app.list_max_pages,
            )
        except ListStalledError as e:
            logger.error(f"{e} Skipping container.")
            self._reporter.record_stalled(container)
            return

        logger.info(f"Transferring objects in '{container}': {total} objects")
        errors: ErrorAggregator = ErrorAggregator()
        counter: ProgressCounter = ProgressCounter(
            container, len(names), self._config.app.progress_interval
        )

        async def backup_object(name: str) -> None:
            outcome: TransferOutcome = await transfer_and_store(
                source,
                credential,
                container,
                name,
                destination,
                bucket.name,
                semaphore,
                self._settings,
            )
            if not outcome.ok:
                errors.append(name, outcome.error)
            counter.increment()

        tasks: Set[asyncio.Task[None]] = {
            asyncio.create_task(backup_object(name)) for name in names
        }
        await self._wait_for_tasks(tasks)
        self._reporter.record_container(container, counter.completed, errors)

    async def _wait_for_tasks(self, tasks: Set[asyncio.Task[None]]) -> None:
        """
        Waits for all tasks, or cancels them if shutdown is signaled first.

        Args:
            tasks (Set[asyncio.Task[None]]): The container's transfer tasks.
        """
        if not tasks:
            return
        all_done: asyncio.Future[List[object]] = asyncio.ensure_future(
            asyncio.gather(*tasks, return_exceptions=True)
        )
        shutdown_task: asyncio.Task[bool] = asyncio.create_task(
            self._shutdown_event.wait()
        )
        try:
            done, _ = await asyncio.wait(
                {all_done, shutdown_task}, return_when=asyncio.FIRST_COMPLETED
            )
            if all_done not in done:
                logger.warning("Shutdown signal received. Terminating transfers.")
                for task in tasks:
                    task.cancel()
            results: List[object] = await all_done
        finally:
            shutdown_task.cancel()
            for task in tasks:
                task.cancel()
            await asyncio.gather(shutdown_task, *tasks, return_exceptions=True)

        for result in results:
            if isinstance(result, Exception):
                raise result
