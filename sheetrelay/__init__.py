"""Batch transfer of tabular data between Google Sheets ranges."""

__version__ = "0.1.0"
