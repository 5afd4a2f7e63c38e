"""
Signal handling for an interruptible backup run.

`GracefulShutdown` maps SIGINT/SIGTERM onto an `asyncio.Event` that the
pipeline races against its transfers. Cancelling in-flight transfers through
the event releases their admission slots and aborts their open uploads
instead of leaving orphaned multipart uploads behind.
"""

import asyncio
import logging
import os
import signal
from types import FrameType
from typing import Any, Callable, Dict, Iterable, Optional, Union

logger: logging.Logger = logging.getLogger(__name__)

_Handler = Union[Callable[[int, Optional[FrameType]], Any], int, None]

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class GracefulShutdown:
    """
    An async context manager yielding an event set on the first signal.

    A second signal while the shutdown is in progress exits the process
    immediately. Previous handlers are restored on exit.
    """

    def __init__(self, signals: Iterable[signal.Signals] = DEFAULT_SIGNALS) -> None:
        self._signals = tuple(signals)
        self._event: asyncio.Event = asyncio.Event()
        self._previous: Dict[signal.Signals, _Handler] = {}

    @property
    def event(self) -> asyncio.Event:
        return self._event

    async def __aenter__(self) -> asyncio.Event:
        loop: asyncio.AbstractEventLoop = asyncio.get_running_loop()

        def _on_signal(signum: int, _: Optional[FrameType]) -> None:
            if self._event.is_set():
                logger.critical("Second shutdown signal received. Exiting now.")
                os._exit(1)
            logger.warning(
                f"Received {signal.strsignal(signum)}. Stopping after in-flight "
                "transfers are cancelled (send again to force exit)."
            )
            loop.call_soon_threadsafe(self._event.set)

        for sig in self._signals:
            try:
                # Only possible from the main thread.
                self._previous[sig] = signal.signal(sig, _on_signal)
            except (ValueError, OSError) as e:
                logger.warning(f"Could not install handler for {sig.name}: {e}")

        return self._event

    async def __aexit__(self, *args: Any) -> None:
        for sig, handler in self._previous.items():
            try:
                signal.signal(sig, handler)
            except (ValueError, OSError) as e:
                logger.warning(f"Could not restore handler for {sig.name}: {e}")
        self._previous.clear()
