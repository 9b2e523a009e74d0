"""Per-kind body parsers (JSON, TextFSM, HTML tables)."""
