"""Shared helpers: input validation and CLI output formatting."""
