"""Helper utilities shared by the CLI layer."""
