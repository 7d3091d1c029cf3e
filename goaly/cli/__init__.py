"""Command-line interface for Goaly."""
