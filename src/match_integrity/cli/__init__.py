"""Command line interface for Match Integrity."""
