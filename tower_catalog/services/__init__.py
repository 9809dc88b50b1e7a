"""Loader, cache, query, calculation and upload services."""
