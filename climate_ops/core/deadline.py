"""Request deadline and cancellation signal.

Every pipeline request carries a ``RequestDeadline``. Network calls
clamp their timeouts to the remaining budget, and retry back-off waits
on the cancellation event instead of ``time.sleep`` so that a slow
provider cannot hang a caller past its deadline.
"""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING

from climate_ops.core.exceptions import RequestCancelledError

if TYPE_CHECKING:
    from collections.abc import Callable


class RequestDeadline:
    """Overall timeout plus a cooperative cancellation flag.

    ``timeout_s=None`` means no deadline; the request can still be
    cancelled explicitly with ``cancel()``.
    """

    def __init__(
        self,
        timeout_s: float | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._expires_at = None if timeout_s is None else clock() + timeout_s
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Signal cancellation; any pending ``sleep`` wakes immediately."""
        self._cancelled.set()

    def remaining(self) -> float | None:
        """Seconds left before expiry, ``None`` when unbounded."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    def check(self, operation: str = "") -> None:
        """Raise ``RequestCancelledError`` if cancelled or expired."""
        if self._cancelled.is_set():
            raise RequestCancelledError(f"Request cancelled during {operation or 'processing'}")
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise RequestCancelledError(f"Request deadline exceeded during {operation or 'processing'}")

    def timeout(self, nominal_s: float) -> float:
        """Clamp a per-call timeout to the remaining budget."""
        self.check("network call")
        remaining = self.remaining()
        if remaining is None:
            return nominal_s
        return min(nominal_s, remaining)

    def sleep(self, seconds: float, operation: str = "retry back-off") -> None:
        """Block for *seconds* unless cancelled; never sleeps past the deadline.

        Raises:
            RequestCancelledError: If cancelled while waiting, or if the
                wait would end after the deadline.
        """
        self.check(operation)
        remaining = self.remaining()
        if remaining is not None and seconds > remaining:
            raise RequestCancelledError(
                f"Request deadline exceeded: {operation} of {seconds:.1f}s "
                f"exceeds remaining {remaining:.1f}s"
            )
        if seconds > 0 and self._cancelled.wait(seconds):
            raise RequestCancelledError(f"Request cancelled during {operation}")
