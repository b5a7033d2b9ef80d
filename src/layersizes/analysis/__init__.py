"""Container layer analysis."""
