"""Transmission tower parts catalog: spreadsheet ingestion, queries and material calculation."""

__version__ = "0.1.0"
