"""Per-layer disk usage of container images as sunburst charts."""

__version__ = "0.1.0"
