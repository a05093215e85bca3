"""CLI commands for cityscan."""
