"""Background workers of the monitor service."""
