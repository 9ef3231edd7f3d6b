"""Error taxonomy shared by the engines and the HTTP layer."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

RAW_RESPONSE_LIMIT = 1000


class TutorError(Exception):
    """Base class for errors that map onto a structured JSON response."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> Dict[str, Any]:
        return {"success": False, "error": self.message}


class ValidationError(TutorError):
    """Raised when a request is missing required fields or carries malformed values."""

    status_code = 400

    def __init__(self, message: str, *, fields: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.fields = tuple(fields)

    @classmethod
    def missing(cls, fields: Iterable[str]) -> "ValidationError":
        names = list(fields)
        return cls(f"Missing required fields: {', '.join(names)}", fields=names)


class AuthenticationError(TutorError):
    """Credentials were rejected by the demo login."""

    status_code = 401


class UpstreamProviderError(TutorError):
    """The LLM provider answered with a non-2xx status or could not be reached."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 502,
        details: Any = None,
        provider: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.details = details
        self.provider = provider

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        if self.details is not None:
            payload["details"] = self.details
        if self.provider:
            payload["provider"] = self.provider
        return payload


class ResponseParseError(TutorError):
    """Model output could not be coerced into the expected JSON shape."""

    status_code = 500

    def __init__(self, raw_text: Optional[str], message: str = "Failed to parse AI response") -> None:
        super().__init__(message)
        self.raw_response = (raw_text or "")[:RAW_RESPONSE_LIMIT]

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["rawResponse"] = self.raw_response
        return payload


class UnknownTemplate(TutorError, KeyError):
    """Requested prompt template is not part of the registry."""

    def __init__(self, name: str, available: Iterable[str]) -> None:
        self.name = name
        self.available = tuple(sorted(available))
        super().__init__(
            f"Prompt '{name}' not found. Available prompts: {', '.join(self.available)}"
        )

    def __str__(self) -> str:
        return self.message


__all__ = [
    "RAW_RESPONSE_LIMIT",
    "TutorError",
    "ValidationError",
    "AuthenticationError",
    "UpstreamProviderError",
    "ResponseParseError",
    "UnknownTemplate",
]
