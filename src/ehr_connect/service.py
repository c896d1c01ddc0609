"""Wires the integration layer together.

:class:`EHRIntegration` owns one instance of every component, all sharing
the same store, cipher and ledger. The HTTP layer gets it from
:func:`get_integration`; tests build their own with fakes injected.
"""

from __future__ import annotations

import logging

from ehr_connect.audit import AccessLedger
from ehr_connect.cipher import Cipher
from ehr_connect.credentials import CredentialStore
from ehr_connect.fhir_client import FHIRClient
from ehr_connect.oauth import AuthorizationFlow, TokenEndpoint
from ehr_connect.store import InMemoryStore, Store
from ehr_connect.sync import ClinicalDataSynchronizer
from ehr_connect.tokens import TokenSupplier

logger = logging.getLogger(__name__)


class EHRIntegration:
    def __init__(
        self,
        store: Store | None = None,
        cipher: Cipher | None = None,
        token_endpoint: TokenEndpoint | None = None,
        fhir: FHIRClient | None = None,
    ) -> None:
        self.store = store or InMemoryStore()
        self.cipher = cipher or Cipher()
        self.token_endpoint = token_endpoint or TokenEndpoint()
        self.fhir = fhir or FHIRClient()

        self.ledger = AccessLedger(self.store)
        self.credentials = CredentialStore(self.store, self.cipher)
        self.flow = AuthorizationFlow(self.credentials, self.token_endpoint, self.ledger)
        self.tokens = TokenSupplier(self.credentials, self.token_endpoint, self.ledger)
        self.synchronizer = ClinicalDataSynchronizer(
            self.store, self.tokens, self.fhir, self.ledger
        )

        if not self.cipher.is_configured:
            logger.warning("EHR_ENCRYPTION_KEY is not set; tokens will not be encrypted")

    async def close(self) -> None:
        """Close both HTTP connection pools."""
        await self.token_endpoint.close()
        await self.fhir.close()


# --- Singleton ---
# The app and the retention loop share one integration per process.

_integration: EHRIntegration | None = None


def get_integration() -> EHRIntegration:
    """Get or create the shared :class:`EHRIntegration`."""
    global _integration  # noqa: PLW0603
    if _integration is None:
        _integration = EHRIntegration()
    return _integration


async def close_integration() -> None:
    global _integration  # noqa: PLW0603
    if _integration is not None:
        await _integration.close()
        _integration = None
