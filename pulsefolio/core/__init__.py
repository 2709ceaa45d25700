"""Cross-cutting helpers shared by providers and services."""

from .retry import RetryConfig, RetryStrategy

__all__ = ["RetryConfig", "RetryStrategy"]
