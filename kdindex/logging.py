from __future__ import annotations

import logging

_ROOT = "kdindex"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a logger nested under the ``kdindex`` namespace."""

    if not name:
        return logging.getLogger(_ROOT)
    if name.startswith(f"{_ROOT}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT}.{name}")


__all__ = ["get_logger"]
