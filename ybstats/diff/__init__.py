"""Metric and structured diffs."""
