"""Bulk spreadsheet import of departments and positions."""

__version__ = "0.1.0"
