"""
Core package for Reef.

Contains the headless WellbeingEngine, the enforcement loop and the
platform-facing services it depends on (prefs, notifier, focus mode).
Zero UI dependencies.
"""
