"""Paginated catalog crawler that stores newly seen works in PostgreSQL."""

__version__ = "0.3.0"
