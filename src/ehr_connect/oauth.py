"""SMART-on-FHIR authorization-code flow against the Plasma gateway.

Concept: Authorization Code flow
    1. ``begin()`` builds an authorization URL; the clinician's browser is
       redirected there and they sign in to their EHR.
    2. The gateway redirects back to our callback with ``code`` and
       ``state``.
    3. ``complete()`` checks ``state`` against the pending flow (CSRF
       protection), then exchanges ``code`` at the token endpoint for an
       access token, an optional refresh token and a lifetime in seconds.

Pending flows live in a server-side store keyed by the random state
token itself, with a short TTL, so nothing depends on ambient session
storage. Each flow moves through::

    IDLE -> AWAITING_REDIRECT -> AWAITING_CALLBACK -> CONNECTED
                 \\___________________\\__________-> FAILED

Demo principals (or global demo mode) skip the gateway entirely and get a
synthesized one-year credential.
"""

from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any
from urllib.parse import urlencode

import httpx

from ehr_connect.audit import AccessLedger
from ehr_connect.config import (
    EHR_DEMO_MODE,
    EHR_DEMO_PRINCIPAL,
    HTTP_TIMEOUT_SECONDS,
    OAUTH_STATE_TTL_SECONDS,
    PLASMA_AUTH_URL,
    PLASMA_CLIENT_ID,
    PLASMA_FHIR_API_BASE,
    PLASMA_REDIRECT_URI,
    PLASMA_SCOPES,
    PLASMA_TOKEN_URL,
)
from ehr_connect.credentials import CredentialStore
from ehr_connect.errors import (
    AuthorizationDeniedError,
    CsrfError,
    RefreshFailedError,
    TokenExchangeError,
    UpstreamOAuthError,
)
from ehr_connect.models import AuditAction, ClientInfo, Credential, utcnow

logger = logging.getLogger(__name__)

DEMO_API_BASE = "https://demo.plasma.health"
DEMO_CONNECTION_LIFETIME = timedelta(days=365)
DEFAULT_EXPIRES_IN = 3600


# ---------------------------------------------------------------------------
# Token endpoint
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TokenResponse:
    access_token: str
    refresh_token: str | None
    expires_in: int


class TokenEndpoint:
    """Form-encoded POSTs to the OAuth2 token endpoint.

    Shared by the authorization flow (``authorization_code`` grant) and
    the token supplier (``refresh_token`` grant).
    """

    def __init__(
        self,
        token_url: str = PLASMA_TOKEN_URL,
        client_id: str = PLASMA_CLIENT_ID,
        redirect_uri: str = PLASMA_REDIRECT_URI,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ) -> None:
        self.token_url = token_url
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self._http = httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._http.aclose()

    async def exchange_code(self, code: str) -> TokenResponse:
        """Trade an authorization code for tokens.

        Raises:
            TokenExchangeError: If the endpoint rejects the code or is unreachable.
        """
        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
            "client_id": self.client_id,
        }
        return await self._token_request(payload, TokenExchangeError)

    async def refresh(self, refresh_token: str) -> TokenResponse:
        """Trade a refresh token for a new access token.

        Raises:
            RefreshFailedError: If the endpoint rejects the refresh token.
        """
        payload = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.client_id,
        }
        return await self._token_request(payload, RefreshFailedError)

    async def _token_request(
        self,
        payload: dict[str, str],
        error_cls: type[UpstreamOAuthError],
    ) -> TokenResponse:
        grant = payload["grant_type"]
        try:
            # data= sends form-encoded, which is what token endpoints expect
            response = await self._http.post(self.token_url, data=payload)
        except httpx.HTTPError as exc:
            raise error_cls(f"Token request ({grant}) failed: {exc}") from exc

        if response.status_code >= 400:
            body = response.text
            logger.error("Token request (%s) failed with HTTP %d", grant, response.status_code)
            raise error_cls(
                f"Token request ({grant}) failed (HTTP {response.status_code}): {body}",
                status_code=response.status_code,
                detail=body,
            )

        try:
            data: dict[str, Any] = response.json()
            access_token = data["access_token"]
        except (ValueError, KeyError, TypeError) as exc:
            raise error_cls(
                f"Token response ({grant}) is missing access_token",
                status_code=response.status_code,
                detail=response.text,
            ) from exc

        try:
            expires_in = int(data.get("expires_in", DEFAULT_EXPIRES_IN))
        except (TypeError, ValueError):
            expires_in = DEFAULT_EXPIRES_IN

        return TokenResponse(
            access_token=access_token,
            refresh_token=data.get("refresh_token") or None,
            expires_in=expires_in,
        )


# ---------------------------------------------------------------------------
# Pending authorizations (CSRF state)
# ---------------------------------------------------------------------------


class FlowStatus(str, Enum):
    IDLE = "idle"
    AWAITING_REDIRECT = "awaiting_redirect"
    AWAITING_CALLBACK = "awaiting_callback"
    EXCHANGING = "exchanging"
    CONNECTED = "connected"
    FAILED = "failed"


_PENDING = (FlowStatus.AWAITING_REDIRECT, FlowStatus.AWAITING_CALLBACK)


@dataclass
class PendingAuthorization:
    principal: str
    status: FlowStatus
    created_at: float


class PendingAuthorizations:
    """Short-lived, server-side map of state token -> pending flow."""

    def __init__(
        self,
        ttl_seconds: float = OAUTH_STATE_TTL_SECONDS,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._monotonic = monotonic
        self._flows: dict[str, PendingAuthorization] = {}

    def _purge_expired(self) -> None:
        cutoff = self._monotonic() - self.ttl_seconds
        for state in [s for s, f in self._flows.items() if f.created_at < cutoff]:
            del self._flows[state]

    def open(self, principal: str) -> str:
        self._purge_expired()
        state = secrets.token_hex(16)
        self._flows[state] = PendingAuthorization(
            principal=principal,
            status=FlowStatus.AWAITING_REDIRECT,
            created_at=self._monotonic(),
        )
        return state

    def get(self, state: str) -> PendingAuthorization | None:
        self._purge_expired()
        return self._flows.get(state)

    def discard(self, state: str) -> None:
        self._flows.pop(state, None)


# ---------------------------------------------------------------------------
# Authorization flow
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuthorizationStart:
    """Result of :meth:`AuthorizationFlow.begin`.

    For demo connections ``connected`` is True and there is nothing to
    redirect to; otherwise the caller must send the browser to
    ``authorization_url``.
    """

    connected: bool
    authorization_url: str | None = None
    state: str | None = None


class AuthorizationFlow:
    def __init__(
        self,
        credentials: CredentialStore,
        token_endpoint: TokenEndpoint,
        ledger: AccessLedger,
        pending: PendingAuthorizations | None = None,
        auth_url: str = PLASMA_AUTH_URL,
        fhir_api_base: str = PLASMA_FHIR_API_BASE,
        scopes: str = PLASMA_SCOPES,
        demo_mode: bool = EHR_DEMO_MODE,
        demo_principal: str = EHR_DEMO_PRINCIPAL,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._credentials = credentials
        self._token_endpoint = token_endpoint
        self._ledger = ledger
        self._pending = pending or PendingAuthorizations()
        self.auth_url = auth_url
        self.fhir_api_base = fhir_api_base
        self.scopes = scopes
        self.demo_mode = demo_mode
        self.demo_principal = demo_principal
        self._clock = clock

    def is_demo(self, principal: str) -> bool:
        return self.demo_mode or principal == self.demo_principal

    async def begin(self, principal: str, client: ClientInfo | None = None) -> AuthorizationStart:
        """Start connecting *principal* to the EHR gateway."""
        if self.is_demo(principal):
            await self._create_demo_connection(principal, client)
            return AuthorizationStart(connected=True)

        state = self._pending.open(principal)
        params = {
            "response_type": "code",
            "client_id": self._token_endpoint.client_id,
            "redirect_uri": self._token_endpoint.redirect_uri,
            "scope": self.scopes,
            "state": state,
            "aud": self.fhir_api_base,
        }
        logger.info("Initiating SMART-on-FHIR authorization for %s", principal)
        return AuthorizationStart(
            connected=False,
            authorization_url=f"{self.auth_url}?{urlencode(params)}",
            state=state,
        )

    def mark_redirected(self, state: str) -> None:
        """Record that the browser has been sent to the gateway."""
        flow = self._pending.get(state)
        if flow is not None and flow.status == FlowStatus.AWAITING_REDIRECT:
            flow.status = FlowStatus.AWAITING_CALLBACK

    def status(self, state: str) -> FlowStatus:
        flow = self._pending.get(state)
        return flow.status if flow is not None else FlowStatus.IDLE

    async def complete(
        self, code: str, state: str, client: ClientInfo | None = None
    ) -> str:
        """Finish the flow started by :meth:`begin` and store the tokens.

        Returns:
            The principal the flow was started for.

        Raises:
            CsrfError: If *state* does not match a pending flow. No token
                request is made in that case.
            TokenExchangeError: If the gateway rejects the code.
        """
        flow = self._pending.get(state) if state else None
        if flow is None or flow.status not in _PENDING:
            raise CsrfError("Invalid OAuth state - possible CSRF attack")

        # claimed before the await; a second callback with this state gets CsrfError
        flow.status = FlowStatus.EXCHANGING
        try:
            tokens = await self._token_endpoint.exchange_code(code)
        except TokenExchangeError:
            flow.status = FlowStatus.FAILED
            raise

        credential = Credential(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_at=self._clock() + timedelta(seconds=tokens.expires_in),
            api_base=self.fhir_api_base,
        )
        try:
            await self._credentials.save(flow.principal, credential)
        except Exception:
            flow.status = FlowStatus.FAILED
            raise

        await self._ledger.record(
            flow.principal, AuditAction.OAUTH_CONNECTED, "OAuth Token", client=client
        )
        flow.status = FlowStatus.CONNECTED
        self._pending.discard(state)
        logger.info("EHR connection established for %s", flow.principal)
        return flow.principal

    def abort(self, state: str, error: str, description: str | None = None) -> None:
        """Handle a callback carrying ``error`` instead of ``code``.

        Raises:
            CsrfError: If *state* does not match a pending flow.
            AuthorizationDeniedError: Always, otherwise.
        """
        flow = self._pending.get(state) if state else None
        if flow is None or flow.status not in _PENDING:
            raise CsrfError("Invalid OAuth state - possible CSRF attack")
        flow.status = FlowStatus.FAILED
        logger.warning("Authorization for %s denied: %s", flow.principal, error)
        raise AuthorizationDeniedError(error, description)

    async def disconnect(self, principal: str, client: ClientInfo | None = None) -> bool:
        """Forget the principal's credential. Returns False if there was none."""
        deleted = await self._credentials.delete(principal)
        if deleted:
            await self._ledger.record(
                principal, AuditAction.DISCONNECTED, "OAuth Token", client=client
            )
            logger.info("Disconnected %s from the EHR gateway", principal)
        return deleted

    async def is_connected(self, principal: str) -> bool:
        return await self._credentials.exists(principal)

    async def _create_demo_connection(
        self, principal: str, client: ClientInfo | None
    ) -> None:
        stamp = int(self._clock().timestamp() * 1000)
        credential = Credential(
            access_token=f"demo-token-{stamp}",
            refresh_token=f"demo-refresh-{stamp}",
            expires_at=self._clock() + DEMO_CONNECTION_LIFETIME,
            api_base=DEMO_API_BASE,
        )
        await self._credentials.save(principal, credential)
        await self._ledger.record(
            principal,
            AuditAction.DEMO_CONNECTION_CREATED,
            "Demo Mode Connection",
            client=client,
        )
        logger.info("Demo mode: created demo connection for %s", principal)
