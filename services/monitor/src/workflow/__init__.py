"""Durable workflow runtime and error taxonomy."""
