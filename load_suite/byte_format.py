"""Human readable byte sizes."""

from __future__ import annotations

_UNITS = ("B", "KB", "MB", "GB")


def format_bytes(num_bytes: float) -> str:
    """Render ``num_bytes`` using the largest unit that keeps the value >= 1.

    >>> format_bytes(1536)
    '1.5 KB'
    """

    if num_bytes < 0:
        raise ValueError(f"Byte count cannot be negative: {num_bytes}")
    if num_bytes == 0:
        return "0 B"

    index = 0
    value = float(num_bytes)
    while value >= 1024 and index < len(_UNITS) - 1:
        value /= 1024
        index += 1
    return f"{_trim(round(value, 2))} {_UNITS[index]}"


def _trim(value: float) -> str:
    if value == int(value):
        return str(int(value))
    return f"{value:.2f}".rstrip("0").rstrip(".")
