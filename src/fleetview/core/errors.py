"""
Error taxonomy shared by the gateway, resolver, aggregator and API layer.

Components raise these; the API layer maps ``status_code`` to the response.
"""

from typing import Optional


class FleetViewError(Exception):
    """Base class for all FleetView errors."""

    status_code: int = 500
    error: str = "Internal error"

    def __init__(self, message: str = "", details: Optional[str] = None):
        super().__init__(message or self.error)
        self.message = message or self.error
        self.details = details

    def to_dict(self) -> dict:
        body = {"success": False, "error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(FleetViewError):
    """Malformed identifier or missing required parameter."""

    status_code = 400
    error = "Invalid request"


class AmbiguousIdentifier(FleetViewError):
    """An identifier matches different devices under different identifier kinds."""

    status_code = 409
    error = "Ambiguous device identifier"

    def __init__(self, identifier: str, matches: dict):
        candidates = ", ".join(f"{kind}={serial}" for kind, serial in matches.items())
        super().__init__(
            f"Identifier '{identifier}' matches more than one device",
            details=candidates,
        )
        self.identifier = identifier
        self.matches = matches


class GatewayError(FleetViewError):
    """Base class for errors raised by the backend gateway."""

    def __init__(
        self,
        message: str = "",
        details: Optional[str] = None,
        endpoint: Optional[str] = None,
        status: Optional[int] = None,
    ):
        super().__init__(message, details)
        self.endpoint = endpoint
        self.status = status


class ConfigurationError(GatewayError):
    """Required backend configuration is missing. Fatal, never retried."""

    status_code = 500
    error = "API configuration error"


class NotFound(GatewayError):
    """Identifier or module genuinely absent."""

    status_code = 404
    error = "Not found"


class UpstreamUnavailable(GatewayError):
    """Backend network failure, timeout, or 5xx response."""

    status_code = 503
    error = "Upstream service unavailable"
