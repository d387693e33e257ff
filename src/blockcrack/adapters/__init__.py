"""Adapters for blockcrack ports."""
