"""Comment threading helpers."""
