"""Shared utilities: errors, retry, auth."""
