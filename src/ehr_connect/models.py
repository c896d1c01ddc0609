"""Internal records and normalized clinical entities.

Normalized entities are what the rest of the portal sees: a uniform,
flattened shape regardless of which EHR produced the data. They are
transient; only conditions and medications are persisted, embedded as
plain lists of dicts inside a patient snapshot.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


class AuditAction(str, Enum):
    """Closed set of actions written to the access ledger."""

    DEMO_CONNECTION_CREATED = "demo_connection_created"
    OAUTH_CONNECTED = "epic_oauth_connected"
    TOKEN_REFRESHED = "epic_token_refreshed"
    DISCONNECTED = "epic_disconnected"
    PATIENT_SEARCH = "plasma_patient_search"
    DEMO_PATIENT_SEARCH = "demo_patient_search"
    PATIENT_DATA_FETCHED = "plasma_patient_data_fetched"
    DEMO_PATIENT_DATA_FETCHED = "demo_patient_data_fetched"


class ClientInfo(BaseModel):
    """Request metadata recorded alongside audit events."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


# --- Credentials ---


class Credential(BaseModel):
    """A principal's OAuth credential, in plaintext.

    Only ever held in memory; :class:`~ehr_connect.credentials.CredentialStore`
    seals both secrets before they reach the store.
    """

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: datetime
    api_base: str

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class AuditEvent(BaseModel):
    principal: str
    action: AuditAction
    patient_id: Optional[str] = None
    resource: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)


# --- Normalized clinical entities ---


class _Entity(BaseModel):
    model_config = ConfigDict(frozen=True)


class Person(_Entity):
    id: Optional[str] = None
    name: str = ""
    first_name: str = ""
    last_name: str = ""
    gender: str = "unknown"
    birth_date: Optional[str] = None
    age: Optional[int] = None
    mrn: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None


class Condition(_Entity):
    id: Optional[str] = None
    code: Optional[str] = None
    system: Optional[str] = None
    display: str = "Unknown condition"
    clinical_status: Optional[str] = None
    verification_status: Optional[str] = None
    category: str = "General"
    severity: Optional[str] = None
    onset_date: Optional[str] = None
    note: Optional[str] = None


class MedicationOrder(_Entity):
    id: Optional[str] = None
    name: str = "Unknown medication"
    code: Optional[str] = None
    status: str = "unknown"
    intent: str = "order"
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    route: Optional[str] = None
    quantity: Optional[float] = None
    refills: int = 0
    prescribed_date: Optional[str] = None
    instructions: Optional[str] = None


class DocumentRef(_Entity):
    id: Optional[str] = None
    type: str = "Clinical Note"
    category: str = "General"
    date: Optional[str] = None
    author: str = "Unknown"
    description: Optional[str] = None
    content: Optional[str] = None
    content_type: str = "text/plain"
    url: Optional[str] = None


class Observation(_Entity):
    id: Optional[str] = None
    code: Optional[str] = None
    display: str = "Unknown"
    category: str = "General"
    value: str = "N/A"
    unit: Optional[str] = None
    reference_range: Optional[str] = None
    status: str = "unknown"
    date: Optional[str] = None
    interpretation: Optional[str] = None


class NormalizedBundle(BaseModel):
    """Everything one sync produced for one patient."""

    patient: Person
    conditions: list[Condition] = []
    medications: list[MedicationOrder] = []
    documents: list[DocumentRef] = []
    observations: list[Observation] = []
    clinical_notes: str = ""
    # Resource categories that were fetched successfully
    categories_fetched: list[str] = []


class Snapshot(BaseModel):
    """A stored, denormalized copy of one patient's external data."""

    principal: str
    patient_id: str
    mrn: Optional[str] = None
    patient_name: Optional[str] = None
    patient_dob: Optional[str] = None
    clinical_notes: str = ""
    diagnoses: list[Condition] = []
    medications: list[MedicationOrder] = []
    last_synced: datetime
