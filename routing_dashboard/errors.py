"""
Error types for the warehouse access layer.

Malformed caller input is reported with
``routing_dashboard.utils.validation.ValidationError``.
"""
from typing import Optional


class AnalyticsError(Exception):
    """Base class for analytics errors."""


class WarehouseUnavailableError(AnalyticsError):
    """The warehouse client could not be created or connected.

    Services never recover from this one; it always reaches the HTTP
    boundary as a 503.
    """


class QueryFailedError(AnalyticsError):
    """A single warehouse query raised or timed out."""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation
