"""Wallet swap tracker: stream ingestion, swap normalization and token enrichment."""

__version__ = "1.0.0"
