"""Adapters to external systems (SQLite catalog, command-line tools)."""
