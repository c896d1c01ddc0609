"""Per-principal OAuth credential persistence.

Both secrets pass through :class:`~ehr_connect.cipher.Cipher` before they
reach the store and are opened immediately after they are read back, so
raw tokens never cross the storage boundary. A principal has at most one
credential row; ``save`` replaces secrets and expiry in a single upsert.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from ehr_connect.cipher import Cipher
from ehr_connect.models import Credential, utcnow
from ehr_connect.store import CREDENTIALS_TABLE, Store

logger = logging.getLogger(__name__)


class CredentialStore:
    def __init__(
        self,
        store: Store,
        cipher: Cipher,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._cipher = cipher
        self._clock = clock

    async def save(self, principal: str, credential: Credential) -> None:
        """Seal and upsert *credential* as the principal's only credential."""
        refresh = credential.refresh_token
        record = {
            "principal": principal,
            "access_token": self._cipher.seal(credential.access_token),
            "refresh_token": self._cipher.seal(refresh) if refresh else None,
            "expires_at": credential.expires_at,
            "api_base": credential.api_base,
            "updated_at": self._clock(),
        }
        await self._store.upsert(CREDENTIALS_TABLE, (principal,), record)
        logger.debug("Stored credential for %s (expires %s)", principal, credential.expires_at)

    async def load(self, principal: str) -> Credential | None:
        """Return the principal's credential with secrets opened, or None.

        Raises:
            DecryptionError: If a stored secret fails authentication.
        """
        row = await self._store.get(CREDENTIALS_TABLE, (principal,))
        if row is None:
            return None
        refresh = row.get("refresh_token")
        return Credential(
            access_token=self._cipher.open(row["access_token"]),
            refresh_token=self._cipher.open(refresh) if refresh else None,
            expires_at=row["expires_at"],
            api_base=row["api_base"],
        )

    async def exists(self, principal: str) -> bool:
        return await self._store.get(CREDENTIALS_TABLE, (principal,)) is not None

    async def delete(self, principal: str) -> bool:
        return await self._store.delete(CREDENTIALS_TABLE, (principal,))
