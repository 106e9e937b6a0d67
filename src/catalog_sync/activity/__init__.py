"""Incremental mirror of the remote activity feed."""
