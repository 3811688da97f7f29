"""Usage tracking: per-app limits, foreground usage and the whitelist."""
