"""
Core infrastructure modules for LocalDirectory.

- exceptions: Standardized exception hierarchy
- circuit_breaker: Resilience pattern for review source calls
- logging_config: structlog configuration shared by the API and CLI
"""

from localdirectory.core.exceptions import (
    DirectoryError,
    RetryableError,
    PermanentError,
    ReviewSourceError,
    ReviewSourceRateLimitError,
    ReviewSourceTimeoutError,
    ReviewSourceUnavailableError,
    ReviewSourceAuthError,
    ReviewSourceNotFoundError,
    DocumentStoreError,
    DocumentNotFoundError,
    BatchLimitError,
    MissingPlaceIdError,
    ConfigurationError,
    CircuitBreakerOpenError,
)

from localdirectory.core.circuit_breaker import (
    CircuitBreaker,
    CircuitState,
    get_circuit_breaker,
    get_all_circuit_breakers,
    reset_all_circuit_breakers,
)
