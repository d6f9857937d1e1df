"""Shared exception types."""
