"""
User-facing notifications.

The Notifier turns enforcement and routine events into a title/text pair
and hands them to a delivery sink (the platform notification service, or
the log when running headless). Delivery is skipped when the notification
permission is not granted; a missing permission is never fatal.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    kind: str
    package_name: Optional[str]
    title: str
    text: str


def format_limit(seconds: float) -> str:
    """Format a duration as HH:MM."""
    total_minutes = int(seconds // 60)
    return f"{total_minutes // 60:02d}:{total_minutes % 60:02d}"


def _log_sink(notification: Notification) -> None:
    logger.info(f"[{notification.kind}] {notification.title} - {notification.text}")


class Notifier:
    """
    Builds and delivers notifications.

    Args:
        sink: Called with each Notification that passes the permission check.
        permission_granted: Returns whether notifications may be shown.
        app_label: Resolves a package name to a display name. May raise
                   LookupError (or return None) for unknown packages, in
                   which case the package name is shown instead.
    """

    def __init__(
        self,
        sink: Optional[Callable[[Notification], None]] = None,
        permission_granted: Callable[[], bool] = lambda: True,
        app_label: Optional[Callable[[str], Optional[str]]] = None
    ) -> None:
        self._sink = sink or _log_sink
        self._permission_granted = permission_granted
        self._app_label = app_label

    def app_name(self, package_name: str) -> str:
        """Display name for a package, falling back to the package name."""
        if self._app_label is None:
            return package_name
        try:
            label = self._app_label(package_name)
        except LookupError:
            logger.debug(f"No app metadata for {package_name}")
            return package_name
        return label or package_name

    def notify(self, kind: str, package_name: Optional[str], detail: Optional[Dict] = None) -> bool:
        """
        Build and deliver a notification.

        Args:
            kind: One of the config.NOTIFY_* kinds.
            package_name: App the notification is about (None for routine events).
            detail: Extra values used in the text (remaining_seconds,
                    limit_seconds, limit_source, routine_name).

        Returns:
            True if delivered, False if skipped.
        """
        detail = detail or {}
        try:
            if not self._permission_granted():
                logger.warning(f"Missing notification permission, dropping {kind} notification")
                return False
        except Exception as e:
            logger.warning(f"Could not check notification permission: {e}")
            return False

        notification = self._build(kind, package_name, detail)
        try:
            self._sink(notification)
        except Exception as e:
            logger.error(f"Failed to deliver {kind} notification: {e}")
            return False
        return True

    def _build(self, kind: str, package_name: Optional[str], detail: Dict) -> Notification:
        app = self.app_name(package_name) if package_name else ""

        if kind == config.NOTIFY_BLOCKED:
            title, text = "Distraction Blocked", f"You were using {app}"
        elif kind == config.NOTIFY_REMINDER:
            minutes = int(detail.get("remaining_seconds", 0) // 60)
            title = "Time limit approaching"
            text = f"{minutes} minutes left on {app} today"
        elif kind == config.NOTIFY_GRACE_PERIOD_STARTED:
            title = f"{app} limit reached"
            text = "Wrap up now, the app will be blocked shortly"
        elif kind == config.NOTIFY_LIMIT_REACHED:
            source = detail.get("limit_source", "daily limit")
            limit = format_limit(detail.get("limit_seconds", 0))
            title = f"{app} blocked for exceeding {source}"
            text = f"You've reached your {limit} {source} for {app}"
        elif kind == config.NOTIFY_ROUTINE_ACTIVATED:
            title = "Routine started"
            text = f"{detail.get('routine_name', 'Routine')} is now active"
        elif kind == config.NOTIFY_ROUTINE_DEACTIVATED:
            title = "Routine ended"
            text = f"{detail.get('routine_name', 'Routine')} is no longer active"
        else:
            logger.warning(f"Unknown notification kind: {kind}")
            title, text = kind, app

        return Notification(kind=kind, package_name=package_name, title=title, text=text)
