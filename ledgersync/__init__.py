"""Offline synchronization and optimistic-concurrency engine for bookkeeping records."""

__version__ = "0.1.0"
