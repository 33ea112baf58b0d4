"""LinkedIn web UI descriptors."""
