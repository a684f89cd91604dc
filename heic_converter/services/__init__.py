"""Request handlers and process-wide services."""
