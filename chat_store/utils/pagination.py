from typing import Tuple


def page_window(page: int, size: int) -> Tuple[int, int]:
    """Return ``(offset, limit)`` for a 1-based page of ``size`` rows."""
    if page < 1:
        raise ValueError(f"page must be >= 1, got {page}")
    if size < 1:
        raise ValueError(f"size must be >= 1, got {size}")
    return (page - 1) * size, size
