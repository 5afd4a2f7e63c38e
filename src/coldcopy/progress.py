"""
Progress tracking and end-of-run reporting.

`ProgressCounter` counts completed transfers for one container and logs a
line at a fixed cadence. `RunReporter` accumulates per-container results,
prints failure listings, and dispatches one summary notification when the
run is over.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from rich.console import Console

from coldcopy.errors import ErrorAggregator
from coldcopy.exceptions import NotificationError

logger: logging.Logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def post_message(self, message: str) -> int: ...


class ProgressCounter:
    """A lock-guarded count of completed transfers within one container."""

    def __init__(self, container: str, total: int, interval: int = 1000) -> None:
        """
        Args:
            container (str): The container being transferred.
            total (int): The number of objects expected.
            interval (int): Log a progress line every this many completions.
        """
        self._lock: threading.Lock = threading.Lock()
        self._container: str = container
        self._total: int = total
        self._interval: int = interval
        self._completed: int = 0

    @property
    def completed(self) -> int:
        with self._lock:
            return self._completed

    def increment(self) -> int:
        """
        Records one completed transfer.

        Returns:
            int: The number of completed transfers after this one.
        """
        with self._lock:
            self._completed += 1
            completed: int = self._completed
        if completed % self._interval == 0:
            logger.info(
                f"{self._container}: {completed}/{self._total} objects processed."
            )
        return completed


@dataclass(frozen=True)
class RunSummary:
    """
    Totals of a finished run.

    Attributes:
        containers (int): Containers whose objects were transferred.
        objects (int): Objects processed, successfully or not.
        errors (int): Objects whose transfer failed.
        elapsed_s (float): Wall-clock duration of the run in seconds.
        stalled_containers (List[str]): Containers skipped because their
            listing did not converge.
    """

    containers: int
    objects: int
    errors: int
    elapsed_s: float
    stalled_containers: List[str] = field(default_factory=list)


def _format_duration(seconds: float) -> str:
    minutes, secs = divmod(int(round(seconds)), 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h{minutes:02d}m{secs:02d}s"


class RunReporter:
    """Accumulates container results and reports the run outcome."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self._console: Console = console or Console(stderr=True)
        self._started: float = time.monotonic()
        self._finished: Optional[float] = None
        self._containers: int = 0
        self._objects: int = 0
        self._errors: int = 0
        self._stalled: List[str] = []

    def record_container(
        self, container: str, processed: int, errors: ErrorAggregator
    ) -> None:
        """
        Records a finished container and prints its failures, if any.

        Args:
            container (str): The container that finished.
            processed (int): Objects processed in the container.
            errors (ErrorAggregator): The container's recorded failures.
        """
        error_count: int = errors.count()
        self._containers += 1
        self._objects += processed
        self._errors += error_count
        if error_count:
            self._console.print(
                f"[bold red]Failed to back up {error_count} objects "
                f"in {container}.[/bold red]"
            )
            self._console.print(errors.format_report(), end="", markup=False)
        else:
            logger.info(f"{container}: all {processed} objects backed up.")

    def record_stalled(self, container: str) -> None:
        self._stalled.append(container)

    def finish(self) -> RunSummary:
        """Stops the clock and returns the run totals."""
        if self._finished is None:
            self._finished = time.monotonic()
        return RunSummary(
            containers=self._containers,
            objects=self._objects,
            errors=self._errors,
            elapsed_s=self._finished - self._started,
            stalled_containers=list(self._stalled),
        )

    @staticmethod
    def format_message(summary: RunSummary) -> str:
        lines: List[str] = [
            "Backup finished.",
            f"Containers: {summary.containers}",
            f"Objects: {summary.objects}",
            f"Errors: {summary.errors}",
            f"Duration: {_format_duration(summary.elapsed_s)}",
        ]
        if summary.stalled_containers:
            lines.append(
                "Skipped (listing stalled): " + ", ".join(summary.stalled_containers)
            )
        return "\n".join(lines)

    async def dispatch(self, notifier: Optional[Notifier]) -> RunSummary:
        """
        Finishes the run and sends the summary notification.

        A delivery failure is logged and does not affect the run's outcome.

        Args:
            notifier (Notifier, optional): The notification endpoint; when None
                the summary is only logged.

        Returns:
            RunSummary: The run totals.
        """
        summary: RunSummary = self.finish()
        message: str = self.format_message(summary)
        logger.info(message.replace("\n", " | "))
        if notifier is None:
            logger.debug("No notification webhook configured.")
            return summary
        try:
            await notifier.post_message(message)
        except NotificationError as e:
            logger.error(f"Failed to send run summary notification: {e}")
        except Exception:
            logger.exception("Unexpected error sending run summary notification")
        return summary
