"""Chart data transformations."""
