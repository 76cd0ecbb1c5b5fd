"""Real-time telemetry ingestion and state aggregation for the pump monitor."""
