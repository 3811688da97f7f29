"""Global focus mode: blocks every non-whitelisted app until it expires."""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

import config
from core.prefs import PrefsStore

logger = logging.getLogger(__name__)


class FocusMode:
    """
    Focus mode flag with a timed expiry.

    The flag and its end time are persisted so a restart mid-session keeps
    blocking; an expired flag is cleared the next time it is read.
    """

    def __init__(self, prefs: PrefsStore, clock: Callable[[], datetime] = datetime.now) -> None:
        self._prefs = prefs
        self._clock = clock
        self._lock = threading.Lock()

    def start(self, minutes: Optional[int] = None) -> datetime:
        """
        Turn focus mode on.

        Args:
            minutes: Session length (defaults to config.DEFAULT_FOCUS_MINUTES).

        Returns:
            When focus mode ends.
        """
        minutes = config.DEFAULT_FOCUS_MINUTES if minutes is None else minutes
        if minutes <= 0:
            raise ValueError("Focus duration must be positive")
        until = self._clock() + timedelta(minutes=minutes)
        with self._lock:
            self._prefs.put(config.KEY_FOCUS_UNTIL, until.isoformat())
            self._prefs.put(config.KEY_FOCUS_MODE, True)
        logger.info(f"Focus mode on until {until:%H:%M}")
        return until

    def stop(self) -> None:
        with self._lock:
            self._prefs.put(config.KEY_FOCUS_MODE, False)
            self._prefs.remove(config.KEY_FOCUS_UNTIL)
        logger.info("Focus mode off")

    def ends_at(self) -> Optional[datetime]:
        raw = self._prefs.get(config.KEY_FOCUS_UNTIL)
        if not raw:
            return None
        try:
            return datetime.fromisoformat(raw)
        except (TypeError, ValueError):
            logger.warning(f"Malformed focus end time {raw!r}")
            return None

    def is_active(self, now: Optional[datetime] = None) -> bool:
        """True while focus mode is on and not yet expired."""
        if not self._prefs.get(config.KEY_FOCUS_MODE, False):
            return False
        now = now or self._clock()
        until = self.ends_at()
        if until is None or now >= until:
            self.stop()
            return False
        return True

    def remaining_seconds(self) -> float:
        if not self.is_active():
            return 0.0
        return max(0.0, (self.ends_at() - self._clock()).total_seconds())
