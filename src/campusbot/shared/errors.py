"""
Errors Module - Typed exception taxonomy for the scraping core.
===============================================================

Every failure that leaves the scraping core is one of:

- NetworkError: transport or HTTP-level failure (some kinds are retryable)
- ParseError: expected markup is missing from a page
- AuthenticationError: session is not logged in or login was rejected
- ConfigurationError: unknown category or missing platform mapping
- AggregationError: every platform resolved for a category failed
"""

from enum import Enum
from typing import Any, Optional


class NetworkErrorKind(str, Enum):
    """Classification of transport failures."""

    CONNECTION = "connection"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    UNKNOWN = "unknown"


RETRYABLE_KINDS = frozenset(
    {NetworkErrorKind.CONNECTION, NetworkErrorKind.TIMEOUT, NetworkErrorKind.RATE_LIMIT}
)


class CampusBotError(Exception):
    """Base class for all errors raised by campusbot."""

    error_type = "campusbot"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for the chat/route boundary."""
        return {
            "name": type(self).__name__,
            "type": self.error_type,
            "message": self.message,
            "details": self.details,
        }


class NetworkError(CampusBotError):
    """
    Transport or HTTP-level failure.

    Attributes:
        kind: Failure classification
        retry_after: Seconds the server asked us to wait (Retry-After header)
        status_code: HTTP status when a response was received
    """

    error_type = "network"

    def __init__(
        self,
        message: str,
        kind: NetworkErrorKind = NetworkErrorKind.UNKNOWN,
        retry_after: Optional[float] = None,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.kind = NetworkErrorKind(kind)
        self.retry_after = retry_after
        self.status_code = status_code

    @property
    def is_retryable(self) -> bool:
        """Whether a bounded retry may succeed."""
        return self.kind in RETRYABLE_KINDS

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            {
                "kind": self.kind.value,
                "retry_after": self.retry_after,
                "status_code": self.status_code,
            }
        )
        return data


class ParseError(CampusBotError):
    """Expected structural markup is absent from the document."""

    error_type = "parse"


class AuthenticationError(CampusBotError):
    """Session is not authenticated, expired, or the login was rejected."""

    error_type = "authentication"


class ConfigurationError(CampusBotError):
    """Unknown category or a category routed to a platform with no handler."""

    error_type = "configuration"


class AggregationError(CampusBotError):
    """
    Every platform resolved for a category failed.

    Attributes:
        category: The requested category
        failures: Mapping of platform name to the exception it raised
    """

    error_type = "aggregation"

    def __init__(self, category: str, failures: dict[str, Exception]):
        causes = "; ".join(f"{platform}: {exc}" for platform, exc in failures.items())
        super().__init__(
            f"All platforms failed for category '{category}': {causes}",
            details={platform: type(exc).__name__ for platform, exc in failures.items()},
        )
        self.category = category
        self.failures = failures

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["failures"] = {
            platform: (exc.to_dict() if isinstance(exc, CampusBotError) else str(exc))
            for platform, exc in self.failures.items()
        }
        return data
