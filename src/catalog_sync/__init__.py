"""Catalog synchronization pipeline: crawl, activity tracking, work queue and health."""

__version__ = "0.3.0"
