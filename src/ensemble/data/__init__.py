"""Bundled prompt data."""
