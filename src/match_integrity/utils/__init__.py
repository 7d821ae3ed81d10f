"""Logging, metrics, audit trail and storage helpers."""
