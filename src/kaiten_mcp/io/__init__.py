"""I/O layer: HTTP transport and resource cache."""
