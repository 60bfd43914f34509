"""Upstream sync pipeline: mode selection, reconciliation, persistence, and retention."""
