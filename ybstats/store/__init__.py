"""Numbered snapshot storage."""
