"""Error taxonomy for service package synchronization."""
from typing import Any, List, Optional


class ServiceSyncError(Exception):
    """Base class for all synchronization errors."""


class FatalSyncError(ServiceSyncError):
    """Error that aborts the whole run before or during discovery."""


class ConfigurationError(FatalSyncError):
    """Raised when a configuration value is invalid."""


class MissingCredential(FatalSyncError):
    """Raised when the API credential is absent or blank."""


class CatalogParseError(FatalSyncError):
    """Raised when the catalog source is missing or malformed."""


class ProtocolError(FatalSyncError):
    """Raised when the remote API breaks the listing contract."""


class DiscoveryFailed(FatalSyncError):
    """Raised when the initial listing of remote event types fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RecordError(ServiceSyncError):
    """
    Per-record request failure.

    The reconciler catches these, marks the record as failed and moves on.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Any = None
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class RateLimitExhausted(RecordError):
    """Raised when HTTP 429 persists past the retry bound."""


class AuthorizationDenied(RecordError):
    """Raised on HTTP 403; never retried."""


class RequestFailed(RecordError):
    """Raised on any other non-2xx response or transport error."""


class DuplicateSlug(ServiceSyncError):
    """Raised when a slug was already claimed earlier in the same run."""

    def __init__(self, slug: str, names: List[str]):
        super().__init__(
            f"Duplicate slug '{slug}' derived from names: {names}"
        )
        self.slug = slug
        self.names = names
