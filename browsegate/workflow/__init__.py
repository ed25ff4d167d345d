"""Task execution: configuration, backend routing, orchestration."""
