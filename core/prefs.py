"""
Persistent key-value store for Reef.

Every piece of durable state (routines, app limits, the active routine,
whitelist, focus mode) lives under a string key in a single JSON file.
Writes are atomic so a crash mid-save never leaves a truncated file.
"""

import copy
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Optional

import config

logger = logging.getLogger(__name__)


class PrefsStore:
    """
    String-keyed store backed by a JSON file.

    Values must be JSON-serialisable. Reads return deep copies so callers
    can mutate what they get back without touching the cached state.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        """
        Initialize the store and load existing data.

        Args:
            path: JSON file to persist to (defaults to config.PREFS_FILE).
        """
        self.path: Path = Path(path) if path is not None else config.PREFS_FILE
        self._lock = threading.RLock()
        self._data: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        """
        Load the prefs file.

        Returns:
            Dict of stored values, empty if the file is missing or unreadable.
        """
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError, OSError, PermissionError) as e:
            logger.warning(f"Failed to load prefs from {self.path}: {e}. Starting fresh.")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Prefs file {self.path} is not an object. Starting fresh.")
            return {}
        return data

    def _save(self) -> bool:
        """
        Save all values to disk atomically.

        Uses atomic write (write to temp file, then rename) to prevent
        data corruption if the process dies during save.

        Returns:
            True if saved successfully, False otherwise.
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)

            temp_fd, temp_path = tempfile.mkstemp(
                suffix='.tmp',
                prefix='prefs_',
                dir=self.path.parent
            )

            try:
                with os.fdopen(temp_fd, 'w') as f:
                    json.dump(self._data, f, indent=2)
                os.replace(temp_path, self.path)
                return True
            except Exception:
                try:
                    os.unlink(temp_path)
                except OSError:
                    pass
                raise

        except (IOError, OSError, PermissionError, TypeError, ValueError) as e:
            logger.error(f"Failed to save prefs to {self.path}: {e}")
            return False

    def get(self, key: str, default: Any = None) -> Any:
        """Return a copy of the value stored under key, or default."""
        with self._lock:
            if key not in self._data:
                return default
            return copy.deepcopy(self._data[key])

    def put(self, key: str, value: Any) -> bool:
        """
        Store value under key and persist.

        Returns:
            True if the change reached disk. On failure the previous value
            is kept.
        """
        with self._lock:
            missing = object()
            previous = self._data.get(key, missing)
            self._data[key] = copy.deepcopy(value)
            if self._save():
                return True
            if previous is missing:
                del self._data[key]
            else:
                self._data[key] = previous
            return False

    def remove(self, key: str) -> bool:
        """Delete key (no-op if absent) and persist."""
        with self._lock:
            if key not in self._data:
                return True
            del self._data[key]
            return self._save()

