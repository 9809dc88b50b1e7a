"""Workbook decoding and sheet parsing."""
