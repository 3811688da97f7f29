"""Whitelist of packages that are never blocked."""

import logging
import threading
from typing import Iterable, Set

import config
from core.prefs import PrefsStore

logger = logging.getLogger(__name__)


class Whitelist:
    """
    Packages exempt from every blocking rule, including focus mode.

    Home-screen launchers are added on startup so the user can always get
    back to the home screen.
    """

    def __init__(self, prefs: PrefsStore) -> None:
        self._prefs = prefs
        self._lock = threading.Lock()
        self._packages: Set[str] = self._load()

    def _load(self) -> Set[str]:
        raw = self._prefs.get(config.KEY_WHITELIST, [])
        if not isinstance(raw, list):
            logger.warning("Ignoring malformed whitelist in prefs")
            return set()
        return {pkg for pkg in raw if isinstance(pkg, str) and pkg}

    def is_whitelisted(self, package_name: str) -> bool:
        with self._lock:
            return package_name in self._packages

    def add(self, package_name: str) -> bool:
        """
        Whitelist a package.

        Returns:
            True if it was added, False if already whitelisted.
        """
        package_name = package_name.strip()
        if not package_name:
            return False
        with self._lock:
            if package_name in self._packages:
                return False
            self._packages.add(package_name)
            self._prefs.put(config.KEY_WHITELIST, sorted(self._packages))
        logger.info(f"Whitelisted {package_name}")
        return True

    def add_launchers(self, launcher_packages: Iterable[str]) -> int:
        """Whitelist home-screen launchers. Returns how many were new."""
        return sum(1 for pkg in launcher_packages if self.add(pkg))

    def packages(self) -> Set[str]:
        with self._lock:
            return set(self._packages)
