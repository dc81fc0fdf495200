"""Shared helpers: checksum and observable values."""
