"""Resumable bulk fetcher and full-text search for browsing history."""

__version__ = "0.1.0"
