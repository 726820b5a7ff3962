"""CLI."""
