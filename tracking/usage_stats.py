"""
Foreground usage statistics.

LimitTracker asks a usage provider how long a package has been in the
foreground since a given instant. On a device the platform answers that;
ForegroundUsageRecorder is the in-process provider, fed by the same
foreground-change signal that drives enforcement.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)


class UsageStatsProvider(Protocol):
    def usage_seconds(self, package_name: str, since: datetime) -> float:
        """Seconds package_name spent in the foreground since `since`."""
        ...


class ForegroundUsageRecorder:
    """
    Records foreground intervals per package.

    Each foreground change closes the interval of the previous package and
    opens one for the new package. The open interval counts up to "now".
    Intervals older than `retention` are pruned as new ones are recorded.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = datetime.now,
        retention: timedelta = timedelta(days=2)
    ) -> None:
        self._clock = clock
        self._retention = retention
        self._lock = threading.Lock()
        # (package, start, end) for closed intervals
        self._intervals: List[Tuple[str, datetime, datetime]] = []
        self._current: Optional[str] = None
        self._current_start: Optional[datetime] = None

    def record_foreground(self, package_name: str, at: Optional[datetime] = None) -> None:
        """
        Note that package_name is now in the foreground.

        Args:
            package_name: Package that came to the foreground.
            at: When it happened (defaults to the clock).
        """
        at = at or self._clock()
        with self._lock:
            if package_name == self._current:
                return
            self._close_current(at)
            self._current = package_name
            self._current_start = at
            self._prune(at)

    def record_background(self, at: Optional[datetime] = None) -> None:
        """Close the open interval (screen off, app sent home)."""
        at = at or self._clock()
        with self._lock:
            self._close_current(at)
            self._current = None
            self._current_start = None

    def _close_current(self, at: datetime) -> None:
        if self._current is not None and self._current_start is not None and at > self._current_start:
            self._intervals.append((self._current, self._current_start, at))

    def _prune(self, now: datetime) -> None:
        cutoff = now - self._retention
        self._intervals = [iv for iv in self._intervals if iv[2] > cutoff]

    def usage_seconds(self, package_name: str, since: datetime) -> float:
        """
        Seconds package_name spent in the foreground since `since`.

        Intervals straddling `since` are clipped to it.
        """
        now = self._clock()
        with self._lock:
            intervals = list(self._intervals)
            if self._current == package_name and self._current_start is not None:
                intervals.append((self._current, self._current_start, now))

        total = 0.0
        for pkg, start, end in intervals:
            if pkg != package_name or end <= since:
                continue
            total += (end - max(start, since)).total_seconds()
        return total
