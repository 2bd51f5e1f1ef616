"""
Core exception hierarchy for LocalDirectory.

Provides standardized exception types with categorization for retry logic.
Pipeline code raises these instead of generic Exception so callers can tell
a transient review-source outage from a bad record.
"""

from typing import Any, Optional


# =============================================================================
# Base Exceptions
# =============================================================================


class DirectoryError(Exception):
    """Base exception for all LocalDirectory errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class RetryableError(DirectoryError):
    """
    Transient errors that should be retried.

    Examples: Rate limits, timeouts, review source outages.
    """

    pass


class PermanentError(DirectoryError):
    """
    Errors that won't be fixed by retrying.

    Examples: Unknown place id, missing business, authentication failures.
    """

    pass


# =============================================================================
# Review Source Errors
# =============================================================================


class ReviewSourceError(DirectoryError):
    """Base exception for third-party review source errors."""

    def __init__(
        self,
        source: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ):
        self.source = source
        super().__init__(f"[{source}] {message}", details)


class ReviewSourceRateLimitError(ReviewSourceError, RetryableError):
    """Raised when the review source answers 429."""

    pass


class ReviewSourceTimeoutError(ReviewSourceError, RetryableError):
    """Raised when a review source request times out."""

    pass


class ReviewSourceUnavailableError(ReviewSourceError, RetryableError):
    """Raised on 5xx responses, network failures or an open circuit."""

    pass


class ReviewSourceAuthError(ReviewSourceError, PermanentError):
    """Raised when the review source rejects our token."""

    pass


class ReviewSourceNotFoundError(ReviewSourceError, PermanentError):
    """Raised when the review source has no listing for a place id."""

    pass


# =============================================================================
# Document Store Errors
# =============================================================================


class DocumentStoreError(DirectoryError):
    """Raised when the hosted document backend rejects or fails a call."""

    def __init__(
        self,
        collection: str,
        operation: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ):
        self.collection = collection
        self.operation = operation
        super().__init__(f"[{collection}.{operation}] {message}", details)


class DocumentNotFoundError(PermanentError):
    """Raised when a document referenced by id does not exist."""

    def __init__(self, collection: str, document_id: str):
        self.collection = collection
        self.document_id = document_id
        super().__init__(
            f"{collection} document not found: {document_id}",
            {"collection": collection, "document_id": document_id},
        )


# =============================================================================
# Pipeline Errors
# =============================================================================


class BatchLimitError(PermanentError):
    """Raised when a caller asks for more than a batch operation accepts."""

    def __init__(self, operation: str, limit: int, requested: int):
        self.operation = operation
        self.limit = limit
        self.requested = requested
        super().__init__(
            f"{operation} accepts at most {limit} items, got {requested}",
            {"operation": operation, "limit": limit, "requested": requested},
        )


class MissingPlaceIdError(PermanentError):
    """Raised when a business cannot be synced because it has no place id."""

    def __init__(self, business_id: str):
        self.business_id = business_id
        super().__init__(
            "Business has no place id", {"business_id": business_id}
        )


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(PermanentError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        self.config_key = config_key
        details = {"config_key": config_key} if config_key else None
        super().__init__(message, details)


# =============================================================================
# Circuit Breaker
# =============================================================================


class CircuitBreakerOpenError(RetryableError):
    """Raised when circuit breaker is open and blocking requests."""

    def __init__(self, service: str, recovery_time: float):
        self.service = service
        self.recovery_time = recovery_time
        super().__init__(
            f"Circuit breaker open for {service}. Recovery in {recovery_time:.1f}s",
            {"service": service, "recovery_time": recovery_time},
        )
