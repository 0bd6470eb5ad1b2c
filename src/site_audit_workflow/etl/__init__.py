"""Inventory ingestion: spreadsheet reading, column resolution, normalization and compliance evaluation."""
