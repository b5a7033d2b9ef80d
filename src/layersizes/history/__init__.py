"""Image history persistence."""
