"""Sync, deletion tracking, retention, and usage accounting for a personal RSS reader."""

__version__ = "0.1.0"
