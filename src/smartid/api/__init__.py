"""HTTP API for the SmartID leave and attendance service."""
