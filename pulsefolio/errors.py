"""
Error taxonomy for the portfolio pipeline.

Validation and discovery failures propagate to the caller. Enrichment
failures are logged and degrade to zero-priced tokens. Rate limits are
retried before they surface.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(str, Enum):
    """Categories used to decide whether a failure is worth retrying."""

    VALIDATION = "validation"
    NETWORK = "network"
    RATE_LIMIT = "rate_limit"
    PROVIDER = "provider"
    TIMEOUT = "timeout"
    STALE = "stale"


@dataclass
class ErrorContext:
    """Additional context about an error."""

    category: ErrorCategory = ErrorCategory.PROVIDER
    recoverable: bool = False
    retry_after_seconds: Optional[float] = None
    provider: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class PortfolioError(Exception):
    """Base class for every error raised by pulsefolio."""

    category: ErrorCategory = ErrorCategory.PROVIDER
    recoverable: bool = False

    def __init__(self, message: str, context: Optional[ErrorContext] = None):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext(category=self.category, recoverable=self.recoverable)


class ValidationError(PortfolioError):
    """Malformed wallet or token address, rejected before any network call."""

    category = ErrorCategory.VALIDATION

    def __init__(self, message: str = "Invalid wallet address format", value: Optional[str] = None):
        super().__init__(
            message,
            context=ErrorContext(
                category=ErrorCategory.VALIDATION,
                recoverable=False,
                details={"value": value} if value is not None else {},
            ),
        )
        self.value = value


class FetchError(PortfolioError):
    """Upstream API answered with a non-success status or could not be reached."""

    category = ErrorCategory.PROVIDER

    def __init__(
        self,
        message: str = "Upstream request failed",
        status_code: Optional[int] = None,
        provider: Optional[str] = None,
        recoverable: bool = False,
    ):
        category = ErrorCategory.NETWORK if status_code is None and recoverable else self.category
        super().__init__(
            message,
            context=ErrorContext(
                category=category,
                recoverable=recoverable,
                provider=provider,
                details={"status_code": status_code} if status_code is not None else {},
            ),
        )
        self.status_code = status_code
        self.provider = provider
        self.recoverable = recoverable


class RateLimitError(FetchError):
    """HTTP 429 from an upstream API."""

    category = ErrorCategory.RATE_LIMIT

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider: Optional[str] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, status_code=429, provider=provider, recoverable=True)
        self.retry_after = retry_after
        self.context.category = ErrorCategory.RATE_LIMIT
        self.context.retry_after_seconds = retry_after


class BatchTimeoutError(PortfolioError):
    """Background batch budget exhausted before every token got a price.

    Pollers report this as a terminal TIMED_OUT state with a final progress
    update; it is never raised out of ``BackgroundBatchPoller.start``.
    """

    category = ErrorCategory.TIMEOUT

    def __init__(self, address: str, completed: int, total: int):
        super().__init__(f"Background batch for {address} timed out at {completed}/{total}")
        self.address = address
        self.completed = completed
        self.total = total


class StaleSessionError(PortfolioError):
    """A newer session for the same wallet superseded the running one."""

    category = ErrorCategory.STALE

    def __init__(self, address: str):
        super().__init__(f"Session for {address} was superseded")
        self.address = address


def is_recoverable(error: BaseException) -> bool:
    """Return True for failures a retry can plausibly fix."""

    if isinstance(error, PortfolioError):
        return error.context.recoverable
    return False


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "PortfolioError",
    "ValidationError",
    "FetchError",
    "RateLimitError",
    "BatchTimeoutError",
    "StaleSessionError",
    "is_recoverable",
]
