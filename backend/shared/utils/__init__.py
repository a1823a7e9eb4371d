"""
Utilities module: HTTP exceptions.
"""

from shared.utils.exceptions import (
    AppException,
    NotFoundError,
    ValidationError,
    InternalError,
)

__all__ = [
    "AppException",
    "NotFoundError",
    "ValidationError",
    "InternalError",
]
