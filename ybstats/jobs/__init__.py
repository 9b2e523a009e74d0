"""ybstats operations."""
