"""Periodic pipeline steps bridging activity to queued work."""
