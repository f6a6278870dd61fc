"""Home Assistant REST endpoint helpers (internal)."""
