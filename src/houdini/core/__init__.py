"""Framework-free telemetry domain: models, configuration and the collector."""
