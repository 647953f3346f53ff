"""PM Board HTTP API."""
