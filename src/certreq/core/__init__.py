"""Shared enums, error taxonomy and processing context."""
