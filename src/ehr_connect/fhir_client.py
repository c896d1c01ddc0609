"""HTTP client for the FHIR R4 API behind the Plasma gateway.

Unlike a long-lived service client, this one holds no token of its own:
every call takes the bearer token of the clinician on whose behalf it is
made (obtained from :class:`~ehr_connect.tokens.TokenSupplier`).

Usage:
    fhir = FHIRClient()
    patient = await fhir.read(token, "Patient/123")
    conditions = await fhir.search(token, "Condition", {"patient": "123"})
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ehr_connect.config import FHIR_PAGE_SIZE, HTTP_TIMEOUT_SECONDS, PLASMA_FHIR_API_BASE
from ehr_connect.errors import FHIRRequestError

logger = logging.getLogger(__name__)

FHIR_JSON = "application/fhir+json"


class FHIRClient:
    """Async client for authenticated FHIR reads and searches.

    Attributes:
        api_base: FHIR base URL (e.g. "https://api.plasma.health/fhir/r4").
        page_size: Default ``_count`` for searches.
    """

    def __init__(
        self,
        api_base: str = PLASMA_FHIR_API_BASE,
        page_size: int = FHIR_PAGE_SIZE,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ) -> None:
        self.api_base = api_base.rstrip("/")
        self.page_size = page_size
        self._http = httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._http.aclose()

    async def read(self, token: str, path: str) -> dict[str, Any]:
        """GET a single resource, e.g. ``Patient/123``.

        Raises:
            FHIRRequestError: On a network failure or non-2xx response.
        """
        return await self._get(token, path)

    async def search(
        self,
        token: str,
        resource_type: str,
        params: dict[str, Any],
        count: int | None = None,
    ) -> list[dict[str, Any]]:
        """Search a resource type and return the resources of the Bundle.

        ``_count`` caps the page size; only the first page is read.

        Raises:
            FHIRRequestError: On a network failure or non-2xx response.
        """
        query = {**params, "_count": count or self.page_size}
        bundle = await self._get(token, resource_type, params=query)
        entries = bundle.get("entry") if isinstance(bundle, dict) else None
        if not isinstance(entries, list):
            return []
        return [
            e["resource"]
            for e in entries
            if isinstance(e, dict) and isinstance(e.get("resource"), dict)
        ]

    async def _get(
        self,
        token: str,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        url = f"{self.api_base}/{path.lstrip('/')}"
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": FHIR_JSON,
        }

        try:
            response = await self._http.get(url, headers=headers, params=params)
        except httpx.HTTPError as exc:
            raise FHIRRequestError(
                status_code=0,
                detail=f"Request to {url} failed: {exc}",
            ) from exc

        if response.status_code >= 400:
            logger.warning("FHIR GET %s returned %d", path, response.status_code)
            raise FHIRRequestError(
                status_code=response.status_code,
                detail=response.text,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise FHIRRequestError(
                status_code=response.status_code,
                detail=f"Response from {url} was not JSON",
            ) from exc
