"""Configuration settings for Reef."""

import os
import sys
from pathlib import Path
from dotenv import load_dotenv


def is_bundled() -> bool:
    """
    Check if the application is running from a PyInstaller bundle.

    Returns:
        True if running from a bundled executable, False otherwise.
    """
    return getattr(sys, 'frozen', False) and hasattr(sys, '_MEIPASS')


def get_user_data_dir() -> Path:
    """
    Get the directory for user-writable data (routines, limits, whitelist).

    For development: Same as <project>/data
    For bundled apps: Uses a dedicated folder in the user's home directory
                      to persist data across updates.

    Returns:
        Path to the user data directory.
    """
    if is_bundled():
        if sys.platform == 'darwin':
            # macOS: ~/Library/Application Support/Reef
            data_dir = Path.home() / "Library" / "Application Support" / "Reef"
        elif sys.platform == 'win32':
            appdata = os.environ.get('APPDATA')
            if appdata:
                data_dir = Path(appdata) / "Reef"
            else:
                data_dir = Path.home() / "AppData" / "Roaming" / "Reef"
        else:
            # Linux: ~/.local/share/Reef
            data_dir = Path.home() / ".local" / "share" / "Reef"
        return data_dir
    else:
        # Development mode
        return Path(__file__).parent / "data"


def _env_int(name: str, default: int) -> int:
    """Read an integer from the environment, falling back to default on bad input."""
    raw = os.getenv(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        import logging
        logging.getLogger(__name__).warning(
            f"{name}={raw!r} is not an integer, using default {default}"
        )
        return default


# Load environment variables from .env file (only in development)
if not is_bundled():
    _env_path = Path(__file__).parent / ".env"
    load_dotenv(_env_path)

# User data directory (for writable data like routines and limits)
_data_dir_override = os.getenv("REEF_DATA_DIR", "")
USER_DATA_DIR = Path(_data_dir_override) if _data_dir_override else get_user_data_dir()

# Key-value store backing routines, limits, whitelist and focus mode
PREFS_FILE = USER_DATA_DIR / "prefs.json"

# Our own package is never blocked
APP_PACKAGE_NAME = "dev.pranav.reef"

# Prefs keys
KEY_ROUTINES = "routines"
KEY_ACTIVE_ROUTINE = "active_routine"
KEY_APP_LIMITS = "app_limits"
KEY_WHITELIST = "whitelist"
KEY_FOCUS_MODE = "focus_mode"
KEY_FOCUS_UNTIL = "focus_until"
KEY_FIRST_RUN = "first_run"

# Limit enforcement
# Time allowed after a limit is hit before the app gets blocked
GRACE_PERIOD_SECONDS = _env_int("GRACE_PERIOD_SECONDS", 120)
# Reminder fires once when remaining time first drops into (0, window]
REMINDER_WINDOW_SECONDS = _env_int("REMINDER_WINDOW_SECONDS", 600)
# Reminder checks run at most this often, across all packages
REMINDER_CHECK_INTERVAL = _env_int("REMINDER_CHECK_INTERVAL", 30)

# Focus mode
DEFAULT_FOCUS_MINUTES = _env_int("DEFAULT_FOCUS_MINUTES", 10)

# Deferred triggers
# Set to false to simulate a platform that refuses precise wake-ups
EXACT_ALARMS_ALLOWED = os.getenv("EXACT_ALARMS_ALLOWED", "true").lower() in ("true", "1", "yes")
# Inexact triggers are batched onto the next boundary of this many seconds
INEXACT_BATCH_SECONDS = 60

# Foreground event kinds the enforcement loop reacts to
FOREGROUND_EVENT_KINDS = frozenset({
    "window_state_changed",
    "window_content_changed",
    "view_clicked",
    "view_focused",
    "view_scrolled",
    "touch_interaction_start",
})

# Notification kinds
NOTIFY_BLOCKED = "blocked"
NOTIFY_REMINDER = "reminder"
NOTIFY_GRACE_PERIOD_STARTED = "grace_period_started"
NOTIFY_LIMIT_REACHED = "limit_reached"
NOTIFY_ROUTINE_ACTIVATED = "routine_activated"
NOTIFY_ROUTINE_DEACTIVATED = "routine_deactivated"

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")  # Can override in .env: DEBUG, INFO, WARNING, ERROR
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
