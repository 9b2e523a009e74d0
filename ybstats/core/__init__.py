"""Configuration, endpoint kinds, records and target resolution."""
