"""Rate limiting for the gateway."""

from .limiter import WINDOW_SECONDS, CredentialRateLimiter, rate_limit_headers

__all__ = ["CredentialRateLimiter", "WINDOW_SECONDS", "rate_limit_headers"]
