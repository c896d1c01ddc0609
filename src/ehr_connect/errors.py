"""Typed failures raised by the integration layer.

The core never renders user-facing messages. Callers (the HTTP layer in
:mod:`ehr_connect.app`) translate these into "reconnect", "retry" or
"contact support" responses.
"""

from __future__ import annotations


class EHRConnectError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(EHRConnectError):
    """Raised when a required setting (e.g. the encryption key) is missing."""


class DecryptionError(EHRConnectError):
    """Raised when a sealed secret is tampered, truncated or keyed wrongly."""


class InvalidResourceError(EHRConnectError):
    """Raised when an external payload has the wrong top-level shape."""


class OAuthError(EHRConnectError):
    """Base class for failures of the OAuth2 authorization/token flows."""


class CsrfError(OAuthError):
    """Raised when the callback's state does not match a pending flow."""


class UpstreamOAuthError(OAuthError):
    """An OAuth failure reported by the token endpoint.

    Carries the upstream HTTP status (0 for network failures) and the raw
    response body so operators can see what the gateway said.
    """

    def __init__(self, message: str, status_code: int = 0, detail: str = "") -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)


class TokenExchangeError(UpstreamOAuthError):
    """Raised when the authorization-code exchange fails."""


class RefreshFailedError(UpstreamOAuthError):
    """Raised when the refresh-token grant fails. The user must reconnect."""


class AuthorizationDeniedError(OAuthError):
    """Raised when the gateway redirects back with an ``error`` parameter."""

    def __init__(self, error: str, description: str | None = None) -> None:
        self.error = error
        self.description = description
        super().__init__(f"Authorization denied: {description or error}")


class NotConnectedError(EHRConnectError):
    """Raised when a principal has no stored credential."""


class NoRefreshTokenError(EHRConnectError):
    """Raised when an expired credential cannot be refreshed."""


class FHIRRequestError(EHRConnectError):
    """Raised when a FHIR API request returns an error response."""

    def __init__(self, status_code: int, detail: str) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"HTTP {status_code}: {detail}")


class SyncFailedError(EHRConnectError):
    """Raised when the mandatory Patient fetch of a sync fails."""
