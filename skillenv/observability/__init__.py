"""Logging hygiene helpers."""
