"""Shared infrastructure for domainstack services."""
