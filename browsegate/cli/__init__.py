"""Command-line interface for browsegate."""
