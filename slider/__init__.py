"""Bulk, reviewable code modifications across many GitHub repositories."""

__version__ = "0.2.0"
