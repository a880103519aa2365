"""Durable database-backed job queue with a polling worker."""

__version__ = "0.1.0"
