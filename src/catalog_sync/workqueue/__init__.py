"""Lease-protected durable work queue."""
