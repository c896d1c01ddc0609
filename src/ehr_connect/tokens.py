"""Hands out usable access tokens, refreshing expired ones on demand.

Refresh is single-flight per principal: concurrent callers for the same
principal serialize on one :class:`asyncio.Lock`, and whoever gets the
lock second re-reads the credential and finds it already fresh. The
gateway therefore sees at most one refresh request per expiry.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime, timedelta

from ehr_connect.audit import AccessLedger
from ehr_connect.credentials import CredentialStore
from ehr_connect.errors import NoRefreshTokenError, NotConnectedError
from ehr_connect.models import AuditAction, ClientInfo, Credential, utcnow
from ehr_connect.oauth import TokenEndpoint

logger = logging.getLogger(__name__)


class TokenSupplier:
    def __init__(
        self,
        credentials: CredentialStore,
        token_endpoint: TokenEndpoint,
        ledger: AccessLedger,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._credentials = credentials
        self._token_endpoint = token_endpoint
        self._ledger = ledger
        self._clock = clock
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def get_valid_token(
        self, principal: str, client: ClientInfo | None = None
    ) -> str:
        """Return an access token for *principal* that has not expired.

        A still-valid token is returned without any network traffic.

        Raises:
            NotConnectedError: If the principal has never connected.
            NoRefreshTokenError: If the token expired and cannot be refreshed.
            RefreshFailedError: If the gateway rejects the refresh token.
        """
        credential = await self._load(principal)
        if not credential.is_expired(self._clock()):
            return credential.access_token

        async with self._locks[principal]:
            # Another caller may have refreshed while we waited for the lock
            credential = await self._load(principal)
            if not credential.is_expired(self._clock()):
                return credential.access_token
            return await self._refresh(principal, credential, client)

    async def _load(self, principal: str) -> Credential:
        credential = await self._credentials.load(principal)
        if credential is None:
            raise NotConnectedError(f"{principal} has not connected an EHR account")
        return credential

    async def _refresh(
        self, principal: str, credential: Credential, client: ClientInfo | None
    ) -> str:
        if not credential.refresh_token:
            raise NoRefreshTokenError(
                f"Access token for {principal} expired and no refresh token is stored"
            )

        logger.info("Refreshing expired access token for %s", principal)
        tokens = await self._token_endpoint.refresh(credential.refresh_token)

        refreshed = Credential(
            access_token=tokens.access_token,
            # Gateways may omit the refresh token on rotation; keep the old one
            refresh_token=tokens.refresh_token or credential.refresh_token,
            expires_at=self._clock() + timedelta(seconds=tokens.expires_in),
            api_base=credential.api_base,
        )
        await self._credentials.save(principal, refreshed)
        await self._ledger.record(
            principal, AuditAction.TOKEN_REFRESHED, "OAuth Token", client=client
        )
        return refreshed.access_token
