"""Fixed-width report output."""
