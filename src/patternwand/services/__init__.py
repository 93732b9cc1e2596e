"""Service layer helpers (catalog, settings, telemetry)."""
