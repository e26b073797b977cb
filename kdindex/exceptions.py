from __future__ import annotations


class InvalidInputError(ValueError):
    """Raised when a build or query receives malformed arguments."""


__all__ = ["InvalidInputError"]
