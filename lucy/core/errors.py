from typing import Any, Dict, Optional

from fastapi import status


# =========================
# Error taxonomy
# Every error knows the HTTP status it maps to, the exception handler
# in lucy.main renders them all in the same JSON envelope.
# =========================
class LucyError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> Dict[str, Any]:
        return {"status": "error", "message": self.message}


class InputError(LucyError):
    """Missing or empty required field."""

    status_code = status.HTTP_400_BAD_REQUEST


class AuthError(LucyError):
    """Missing session or insufficient authorization level."""

    status_code = status.HTTP_401_UNAUTHORIZED


class PolicyError(LucyError):
    """Query failed the read-only safety check."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(LucyError):
    status_code = status.HTTP_404_NOT_FOUND


class RetrievalError(LucyError):
    """Data store unreachable or returned malformed rows."""


class ConfigurationError(LucyError):
    pass


class UpstreamError(LucyError):
    """Non-success answer (or no answer) from Gemini or Power BI."""

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        super().__init__(message)
        self.upstream_status = upstream_status

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["upstream_status"] = self.upstream_status
        return payload


class TokenError(UpstreamError):
    """Client-credential exchange with the identity provider failed."""


class ResponseShapeError(LucyError):
    """Success status, but the body lacks the expected path."""


class ParseError(LucyError):
    """Structured block absent or malformed in the LLM answer."""
