"""Offset-cursor crawl of the remote catalog listing."""
