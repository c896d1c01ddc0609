"""Pull a patient's clinical record from the EHR and keep a local snapshot.

A production sync fans out five FHIR requests concurrently and waits for
all of them to settle:

    Patient/{id}                                   (mandatory)
    Condition?patient={id}
    MedicationRequest?patient={id}
    DocumentReference?patient={id}
    Observation?patient={id}&category=laboratory

Only the Patient read is mandatory. Any other category that fails is
logged and treated as empty, so one flaky endpoint never costs the
clinician the rest of the record. The normalized result is upserted as a
snapshot keyed on (principal, patient id) and the access is audited.

Demo principals, global demo mode and ``demo-patient-*`` ids take the
fixture path instead, which persists and audits the same way.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import date, datetime
from typing import Any

from ehr_connect import demo
from ehr_connect.audit import AccessLedger
from ehr_connect.config import EHR_DEMO_MODE, EHR_DEMO_PRINCIPAL, FHIR_SEARCH_LIMIT
from ehr_connect.errors import InvalidResourceError, SyncFailedError
from ehr_connect.fhir_client import FHIRClient
from ehr_connect.models import (
    AuditAction,
    ClientInfo,
    Condition,
    MedicationOrder,
    NormalizedBundle,
    Person,
    Snapshot,
    utcnow,
)
from ehr_connect.normalizer import (
    normalize_conditions,
    normalize_documents,
    normalize_medications,
    normalize_observations,
    normalize_person,
    summarize_documents,
)
from ehr_connect.store import SNAPSHOTS_TABLE, Store
from ehr_connect.tokens import TokenSupplier

logger = logging.getLogger(__name__)

GATEWAY_SUFFIX = "via Plasma FHIR"

# (category, normalizer) for the optional fetches, in fan-out order
_CATEGORIES: list[tuple[str, Callable[[Any], list[Any]]]] = [
    ("Condition", normalize_conditions),
    ("MedicationRequest", normalize_medications),
    ("DocumentReference", normalize_documents),
    ("Observation", normalize_observations),
]


class ClinicalDataSynchronizer:
    def __init__(
        self,
        store: Store,
        tokens: TokenSupplier,
        fhir: FHIRClient,
        ledger: AccessLedger,
        demo_mode: bool = EHR_DEMO_MODE,
        demo_principal: str = EHR_DEMO_PRINCIPAL,
        search_limit: int = FHIR_SEARCH_LIMIT,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._tokens = tokens
        self._fhir = fhir
        self._ledger = ledger
        self.demo_mode = demo_mode
        self.demo_principal = demo_principal
        self.search_limit = search_limit
        self._clock = clock

    def _today(self) -> date:
        return self._clock().date()

    def _is_demo_principal(self, principal: str) -> bool:
        return self.demo_mode or principal == self.demo_principal

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search(
        self, principal: str, query: str, client: ClientInfo | None = None
    ) -> list[Person]:
        """Find patients by name (or, in demo mode, by name, MRN or email).

        Raises:
            NotConnectedError: If the principal has no EHR connection.
            FHIRRequestError: If the upstream search fails.
        """
        if self._is_demo_principal(principal):
            patients = demo.search_patients(query, self._today())
            await self._ledger.record(
                principal, AuditAction.DEMO_PATIENT_SEARCH, "Demo Patient Search",
                client=client,
            )
            return patients

        token = await self._tokens.get_valid_token(principal, client)
        resources = await self._fhir.search(
            token, "Patient", {"name": query}, count=self.search_limit
        )
        patients = []
        for resource in resources:
            try:
                patients.append(normalize_person(resource, self._today()))
            except InvalidResourceError:
                logger.warning("Skipping malformed Patient in search results", exc_info=True)

        await self._ledger.record(
            principal, AuditAction.PATIENT_SEARCH, f"Patient {GATEWAY_SUFFIX}",
            client=client,
        )
        logger.info("Found %d patients for query %r", len(patients), query)
        return patients

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    async def sync(
        self, principal: str, patient_id: str, client: ClientInfo | None = None
    ) -> NormalizedBundle:
        """Fetch, normalize and persist one patient's record.

        Raises:
            NotConnectedError: If the principal has no EHR connection.
            SyncFailedError: If the Patient resource cannot be fetched, or
                a demo patient id is unknown.
        """
        if self._is_demo_principal(principal) or demo.is_demo_patient(patient_id):
            return await self._sync_demo(principal, patient_id, client)

        token = await self._tokens.get_valid_token(principal, client)
        logger.info("Fetching patient data for %s", patient_id)

        results = await asyncio.gather(
            self._fhir.read(token, f"Patient/{patient_id}"),
            self._fhir.search(token, "Condition", {"patient": patient_id}),
            self._fhir.search(token, "MedicationRequest", {"patient": patient_id}),
            self._fhir.search(token, "DocumentReference", {"patient": patient_id}),
            self._fhir.search(
                token, "Observation", {"patient": patient_id, "category": "laboratory"}
            ),
            return_exceptions=True,
        )

        patient_result = results[0]
        if isinstance(patient_result, BaseException):
            raise SyncFailedError(
                f"Failed to fetch Patient/{patient_id}: {patient_result}"
            ) from patient_result
        try:
            person = normalize_person(patient_result, self._today())
        except InvalidResourceError as exc:
            raise SyncFailedError(f"Patient/{patient_id} could not be read: {exc}") from exc

        fetched = ["Patient"]
        lists: dict[str, list[Any]] = {}
        for (category, normalize), result in zip(_CATEGORIES, results[1:]):
            if isinstance(result, BaseException):
                logger.warning(
                    "Fetching %s for %s failed, continuing without it: %s",
                    category, patient_id, result,
                )
                lists[category] = []
                continue
            try:
                lists[category] = normalize(result)
            except InvalidResourceError:
                logger.warning(
                    "Normalizing %s for %s failed, continuing without it",
                    category, patient_id, exc_info=True,
                )
                lists[category] = []
                continue
            fetched.append(category)

        documents = lists["DocumentReference"]
        bundle = NormalizedBundle(
            patient=person,
            conditions=lists["Condition"],
            medications=lists["MedicationRequest"],
            documents=documents,
            observations=lists["Observation"],
            clinical_notes=summarize_documents(documents),
            categories_fetched=fetched,
        )

        await self._save_snapshot(principal, patient_id, bundle)
        await self._ledger.record(
            principal,
            AuditAction.PATIENT_DATA_FETCHED,
            f"{', '.join(fetched)} {GATEWAY_SUFFIX}",
            patient_id=patient_id,
            client=client,
        )
        logger.info("Synced %s (%s)", patient_id, ", ".join(fetched))
        return bundle

    async def _sync_demo(
        self, principal: str, patient_id: str, client: ClientInfo | None
    ) -> NormalizedBundle:
        bundle = demo.get_patient_bundle(patient_id, self._today())
        if bundle is None:
            raise SyncFailedError(f"Unknown demo patient {patient_id!r}")

        await self._save_snapshot(principal, patient_id, bundle)
        await self._ledger.record(
            principal,
            AuditAction.DEMO_PATIENT_DATA_FETCHED,
            "Demo Patient Data",
            patient_id=patient_id,
            client=client,
        )
        logger.info("Demo mode: served fixture data for %s", patient_id)
        return bundle

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    async def _save_snapshot(
        self, principal: str, patient_id: str, bundle: NormalizedBundle
    ) -> None:
        patient = bundle.patient
        record = {
            "principal": principal,
            "patient_id": patient_id,
            "mrn": patient.mrn,
            "patient_name": patient.name,
            "patient_dob": patient.birth_date,
            "clinical_notes": bundle.clinical_notes,
            "diagnoses": [c.model_dump(mode="json") for c in bundle.conditions],
            "medications": [m.model_dump(mode="json") for m in bundle.medications],
            "last_synced": self._clock(),
        }
        await self._store.upsert(SNAPSHOTS_TABLE, (principal, patient_id), record)

    async def get_snapshot(self, principal: str, patient_id: str) -> Snapshot | None:
        """Read back the stored snapshot, rebuilding diagnoses and medications."""
        row = await self._store.get(SNAPSHOTS_TABLE, (principal, patient_id))
        if row is None:
            return None
        return Snapshot(
            principal=row["principal"],
            patient_id=row["patient_id"],
            mrn=row.get("mrn"),
            patient_name=row.get("patient_name"),
            patient_dob=row.get("patient_dob"),
            clinical_notes=row.get("clinical_notes") or "",
            diagnoses=[Condition.model_validate(c) for c in row.get("diagnoses") or []],
            medications=[
                MedicationOrder.model_validate(m) for m in row.get("medications") or []
            ],
            last_synced=row["last_synced"],
        )
