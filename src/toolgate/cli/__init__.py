"""CLI entry point for toolgate."""
