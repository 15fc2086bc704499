"""Packaged question catalog."""
