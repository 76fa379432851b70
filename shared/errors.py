"""
Shared error handling for the Atlas OS gateway.

Every gateway-originated error is rendered through the same envelope:
``{"success": false, "error": {"code", "message", "details", "trace_id"}}``.
"""

from typing import Any, Dict, Optional

from opentelemetry import trace
from pydantic import BaseModel, Field


class ErrorBody(BaseModel):
    """Machine-readable error payload."""

    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
    trace_id: Optional[str] = None


class ErrorResponse(BaseModel):
    """Standard error response format."""

    success: bool = False
    error: ErrorBody


def current_trace_id() -> Optional[str]:
    """Return the active trace id as hex, if a span is recording."""
    current_span = trace.get_current_span()
    if current_span and current_span.is_recording():
        span_context = current_span.get_span_context()
        if span_context.trace_id != 0:
            return f"{span_context.trace_id:032x}"
    return None


def success_response(data: Any) -> Dict[str, Any]:
    """Wrap a payload in the success envelope."""
    return {"success": True, "data": data}


class AccessLayerException(Exception):
    """Base exception for gateway errors."""

    status_code: int = 400

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        # Logged by the exception handler, never rendered to the caller.
        self.log_context: Dict[str, Any] = {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            error=ErrorBody(
                code=self.code,
                message=self.message,
                details=self.details,
                trace_id=current_trace_id(),
            )
        )


class ValidationError(AccessLayerException):
    """Caller input errors."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class MissingParameterError(ValidationError):
    """A required request parameter was not supplied."""

    def __init__(self, parameter: str):
        super().__init__(f"'{parameter}' is required", details={"parameter": parameter})
        self.code = "MISSING_PARAMETER"
        self.parameter = parameter


class UnknownChainError(ValidationError):
    """The caller asked for a chain alias that is not in the alias table."""

    def __init__(self, alias: str, listing_path: str = "/atlas-os/rpc"):
        super().__init__(
            f'Unknown chain: "{alias}". GET {listing_path} for full list.',
            details={"alias": alias, "list": listing_path},
        )
        self.code = "UNKNOWN_CHAIN"
        self.alias = alias


class AuthenticationError(AccessLayerException):
    """Authentication-related errors. Messages stay generic."""

    status_code = 401

    def __init__(self, message: str = "Missing or invalid API key", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)


class NotFoundError(AccessLayerException):
    """Requested resource does not exist for the caller."""

    status_code = 404

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class RateLimitError(AccessLayerException):
    """Rate limiting errors."""

    status_code = 429

    def __init__(self, message: str = "Rate limit exceeded", details: Optional[Dict[str, Any]] = None):
        super().__init__("RATE_LIMIT_ERROR", message, details)


class UpstreamUnreachableError(AccessLayerException):
    """An upstream provider could not be reached or timed out."""

    status_code = 502

    def __init__(self, provider: str, message: str = "Upstream unreachable", *, timed_out: bool = False):
        super().__init__(
            "UPSTREAM_UNREACHABLE",
            f"{provider}: {message}",
            details={"provider": provider, "reason": "timeout" if timed_out else "connection"},
            status_code=504 if timed_out else 502,
        )
        self.provider = provider


class DependencyUnavailableError(AccessLayerException):
    """An internal dependency (database, cache) failed. The dependency name stays server-side."""

    status_code = 503

    def __init__(self, dependency: str, message: str = "Service temporarily unavailable, retry later"):
        super().__init__("DEPENDENCY_UNAVAILABLE", message)
        self.dependency = dependency
        self.log_context = {"dependency": dependency}


class ConfigurationError(AccessLayerException):
    """Startup configuration is incomplete. Fatal for the process."""

    status_code = 500

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)
