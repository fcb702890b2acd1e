"""DuckDB market registry and oracle event log."""
