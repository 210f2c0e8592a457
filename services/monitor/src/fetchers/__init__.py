"""Fetchers for registration, DNS, HTTP headers and TLS certificates."""
