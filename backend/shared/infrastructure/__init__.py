"""
Infrastructure module: request correlation for logging.
"""

from shared.infrastructure.correlation import (
    CorrelationIdMiddleware,
    CorrelationIdFilter,
    get_request_id,
)

__all__ = [
    "CorrelationIdMiddleware",
    "CorrelationIdFilter",
    "get_request_id",
]
