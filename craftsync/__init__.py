"""Offline-first sync engine for craft projects and inventory."""

__version__ = "0.1.0"
