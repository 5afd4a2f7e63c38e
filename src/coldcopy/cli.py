"""Command-line interface for the coldcopy tool."""

import asyncio
import logging
import sys
from typing import Any

import click
from dotenv import load_dotenv
from rich.logging import RichHandler

from coldcopy.config import AppConfig, Config
from coldcopy.exceptions import ColdCopyError
from coldcopy.signals import GracefulShutdown

logger: logging.Logger = logging.getLogger(__name__)


def setup_logging(level: str) -> None:
    """Configure rich-based logging for the application."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    # Silence noisy loggers
    for logger_name in ["botocore", "aiobotocore", "aiohttp", "urllib3"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


async def main_async(config: Config) -> None:
    """
    Asynchronously execute the backup pipeline.

    Args:
        config (Config): The application configuration.
    """
    # Lazily import to keep the CLI fast
    from coldcopy.pipeline import BackupPipeline

    async with GracefulShutdown() as shutdown_event:
        pipeline: BackupPipeline = BackupPipeline(config, shutdown_event)
        await pipeline.run()


@click.command(context_settings=dict(help_option_names=["-h", "--help"]))
@click.option(
    "--concurrency",
    type=click.IntRange(min=1),
    default=5,
    help="Maximum number of concurrent object transfers.",
    show_default=True,
)
@click.option(
    "--progress-interval",
    type=click.IntRange(min=1),
    default=1000,
    help="Log a progress line every N completed transfers.",
    show_default=True,
)
@click.option(
    "--part-size-mb",
    type=click.IntRange(min=5),
    default=8,
    help="Multipart upload part size at the destination, in MiB.",
    show_default=True,
)
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Set the logging level.",
    show_default=True,
)
def cli(**kwargs: Any) -> None:
    """
    Back up every Swift container into cold-storage buckets.

    Each container is copied into its own dated bucket at an S3-compatible
    destination. Objects are streamed and gzip-compressed on the fly; the
    destination buckets are created with a cold storage class, versioning
    and a retention lifecycle rule.

    Per-object failures are reported but do not fail the run. Credentials
    and endpoints must be set via environment variables (a .env file is
    loaded if present).
    """
    load_dotenv()
    setup_logging(kwargs["log_level"])

    try:
        app_config: AppConfig = AppConfig(
            concurrency=kwargs["concurrency"],
            progress_interval=kwargs["progress_interval"],
            part_size_bytes=kwargs["part_size_mb"] * 1024**2,
        )
        config: Config = Config(app=app_config)

        asyncio.run(main_async(config))
        logger.info("✅ Backup run completed.")
    except ColdCopyError as e:
        logger.critical(f"A critical application error occurred: {e}")
        sys.exit(1)
    except asyncio.CancelledError:
        logger.warning("Shutdown signal received. Exiting.")
    except Exception:
        logger.critical(
            "An unexpected error caused the application to fail:", exc_info=True
        )
        sys.exit(1)


if __name__ == "__main__":
    cli()
