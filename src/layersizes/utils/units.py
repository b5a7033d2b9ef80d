"""Human readable byte sizes."""

from __future__ import annotations

UNITS = ("B", "KiB", "MiB", "GiB", "TiB", "PiB")


def format_bytes(size: float, precision: int = 2) -> str:
    """Format ``size`` with a binary unit prefix, e.g. ``1.50 KiB``.

    Raises ``ValueError`` for magnitudes that need a unit beyond PiB (2**50).
    """
    value = float(size)
    for unit in UNITS:
        if abs(value) < 1024 or unit == UNITS[-1]:
            break
        value /= 1024

    if abs(value) >= 1024:
        raise ValueError(f"Size {size} exceeds the largest supported unit {UNITS[-1]}")
    if unit == "B":
        return f"{int(value)} B"
    return f"{value:.{precision}f} {unit}"
