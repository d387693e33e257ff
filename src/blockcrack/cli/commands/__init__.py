"""Reporting commands registered on the blockcrack app."""
