"""Database setup helpers."""
