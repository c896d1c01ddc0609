"""FastAPI server: the HTTP entry point for the EHR integration.

Endpoints:

- GET    /health                    Simple check that the server is running
- POST   /epic/connect              Start the SMART-on-FHIR flow (or connect demo)
- GET    /epic/callback             OAuth redirect target
- GET    /epic/status               Is the caller connected?
- DELETE /epic/connection           Forget the caller's EHR credential
- GET    /patients/search?q=        Find patients in the EHR
- POST   /patients/{id}/sync        Pull and store one patient's record
- GET    /patients/{id}/snapshot    The stored copy from the last sync
- GET    /patients/{id}/summary     Plain-text clinical summary (fresh sync)
- POST   /admin/retention-sweep     Purge expired snapshots and audit rows

The caller's identity comes from the ``X-Principal`` header, set by the
portal's own auth layer in front of this service.

Run locally with:
    uvicorn ehr_connect.app:app --reload
"""

import asyncio
import contextlib
import dataclasses
import logging
from collections.abc import AsyncIterator

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from ehr_connect.audit import run_retention_loop
from ehr_connect.config import LOG_LEVEL, RETENTION_SWEEP_INTERVAL_HOURS
from ehr_connect.errors import (
    ConfigurationError,
    CsrfError,
    DecryptionError,
    EHRConnectError,
    FHIRRequestError,
    InvalidResourceError,
    NoRefreshTokenError,
    NotConnectedError,
    OAuthError,
    SyncFailedError,
)
from ehr_connect.models import ClientInfo, NormalizedBundle, Person, Snapshot
from ehr_connect.normalizer import build_clinical_summary
from ehr_connect.service import EHRIntegration, close_integration, get_integration

logging.basicConfig(
    level=LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    sweeper: asyncio.Task[None] | None = None
    if RETENTION_SWEEP_INTERVAL_HOURS > 0:
        sweeper = asyncio.create_task(
            run_retention_loop(
                get_integration().ledger, RETENTION_SWEEP_INTERVAL_HOURS * 3600
            )
        )
    yield
    if sweeper is not None:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
    await close_integration()


app = FastAPI(
    title="EHR Connect",
    description="SMART-on-FHIR integration: connect, sync and audit EHR access",
    version="0.1.0",
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------

# Checked in order; the first matching class wins
_ERROR_RESPONSES: list[tuple[type[EHRConnectError], int, str]] = [
    (CsrfError, 400, "reconnect"),
    (NotConnectedError, 401, "reconnect"),
    (NoRefreshTokenError, 401, "reconnect"),
    (OAuthError, 401, "reconnect"),
    (FHIRRequestError, 502, "retry"),
    (SyncFailedError, 502, "retry"),
    (InvalidResourceError, 500, "contact_support"),
    (DecryptionError, 500, "contact_support"),
    (ConfigurationError, 500, "contact_support"),
]


@app.exception_handler(EHRConnectError)
async def handle_ehr_error(request: Request, exc: EHRConnectError) -> JSONResponse:
    status_code, action = 500, "contact_support"
    for error_cls, code, error_action in _ERROR_RESPONSES:
        if isinstance(exc, error_cls):
            status_code, action = code, error_action
            break
    logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "action": action, "detail": str(exc)},
    )


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------


def principal_header(x_principal: str | None = Header(default=None)) -> str:
    """The authenticated clinician, as asserted by the portal."""
    if not x_principal:
        raise HTTPException(status_code=401, detail="Missing X-Principal header")
    return x_principal


def client_info(request: Request) -> ClientInfo:
    return ClientInfo(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


class ConnectResponse(BaseModel):
    """What /epic/connect sends back."""

    connected: bool
    authorization_url: str | None = None  # Redirect the browser here
    state: str | None = None


class StatusResponse(BaseModel):
    principal: str
    connected: bool


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint. Returns 200 if the server is running."""
    return {"status": "ok"}


@app.post("/epic/connect", response_model=ConnectResponse)
async def connect(
    request: Request,
    principal: str = Depends(principal_header),
    integration: EHRIntegration = Depends(get_integration),
) -> ConnectResponse:
    """Start connecting the caller's EHR account.

    Demo principals are connected immediately. Everyone else gets an
    authorization URL to send their browser to.
    """
    start = await integration.flow.begin(principal, client_info(request))
    if start.state is not None:
        integration.flow.mark_redirected(start.state)
    return ConnectResponse(
        connected=start.connected,
        authorization_url=start.authorization_url,
        state=start.state,
    )


@app.get("/epic/callback")
async def callback(
    request: Request,
    state: str = "",
    code: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
    integration: EHRIntegration = Depends(get_integration),
) -> dict[str, str | bool]:
    """OAuth redirect target. Exchanges the code and stores the credential."""
    if error:
        integration.flow.abort(state, error, error_description)
    if not code:
        raise HTTPException(status_code=400, detail="Missing authorization code")
    principal = await integration.flow.complete(code, state, client_info(request))
    return {"connected": True, "principal": principal}


@app.get("/epic/status", response_model=StatusResponse)
async def status(
    principal: str = Depends(principal_header),
    integration: EHRIntegration = Depends(get_integration),
) -> StatusResponse:
    connected = await integration.flow.is_connected(principal)
    return StatusResponse(principal=principal, connected=connected)


@app.delete("/epic/connection")
async def disconnect(
    request: Request,
    principal: str = Depends(principal_header),
    integration: EHRIntegration = Depends(get_integration),
) -> dict[str, bool]:
    removed = await integration.flow.disconnect(principal, client_info(request))
    return {"disconnected": removed}


@app.get("/patients/search", response_model=list[Person])
async def search_patients(
    request: Request,
    q: str = "",
    principal: str = Depends(principal_header),
    integration: EHRIntegration = Depends(get_integration),
) -> list[Person]:
    return await integration.synchronizer.search(principal, q, client_info(request))


@app.post("/patients/{patient_id}/sync", response_model=NormalizedBundle)
async def sync_patient(
    patient_id: str,
    request: Request,
    principal: str = Depends(principal_header),
    integration: EHRIntegration = Depends(get_integration),
) -> NormalizedBundle:
    """Fetch the patient's record from the EHR and store a fresh snapshot."""
    return await integration.synchronizer.sync(principal, patient_id, client_info(request))


@app.get("/patients/{patient_id}/snapshot", response_model=Snapshot)
async def get_snapshot(
    patient_id: str,
    principal: str = Depends(principal_header),
    integration: EHRIntegration = Depends(get_integration),
) -> Snapshot:
    snapshot = await integration.synchronizer.get_snapshot(principal, patient_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="No snapshot for this patient")
    return snapshot


@app.get("/patients/{patient_id}/summary", response_class=PlainTextResponse)
async def patient_summary(
    patient_id: str,
    request: Request,
    principal: str = Depends(principal_header),
    integration: EHRIntegration = Depends(get_integration),
) -> str:
    """Sync the patient, then render the clinical summary as plain text."""
    bundle = await integration.synchronizer.sync(principal, patient_id, client_info(request))
    return build_clinical_summary(bundle)


@app.post("/admin/retention-sweep")
async def retention_sweep(
    integration: EHRIntegration = Depends(get_integration),
) -> dict[str, int]:
    """Run the retention sweep now, outside the periodic schedule."""
    result = await integration.ledger.sweep()
    return dataclasses.asdict(result)
