"""Remote catalog client, normalization and local catalog persistence."""
