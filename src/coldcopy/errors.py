"""
Collection of per-object transfer failures.

Transfers for one container report their failures into a shared
`ErrorAggregator`. All access goes through a lock, so appends from any
number of concurrent tasks (or threads) are never lost and a report always
sees a consistent snapshot.
"""

import threading
from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class ObjectError:
    """
    A failure recorded for one object.

    Attributes:
        object_name (str): The object whose transfer failed.
        error (BaseException): The recorded error.
    """

    object_name: str
    error: BaseException


class ErrorAggregator:
    """An append-only, lock-guarded list of per-object errors."""

    def __init__(self) -> None:
        self._lock: threading.Lock = threading.Lock()
        self._errors: List[ObjectError] = []

    def append(self, object_name: str, error: BaseException) -> None:
        with self._lock:
            self._errors.append(ObjectError(object_name, error))

    def count(self) -> int:
        with self._lock:
            return len(self._errors)

    def __len__(self) -> int:
        return self.count()

    def entries(self) -> List[ObjectError]:
        """Returns a snapshot of the recorded errors in append order."""
        with self._lock:
            return list(self._errors)

    def format_report(self) -> str:
        """
        Formats every recorded error as one `<object>: <error>` line.

        Returns:
            str: The report, in append order; empty if nothing failed.
        """
        return "".join(
            f"{entry.object_name}: {entry.error}\n" for entry in self.entries()
        )
