"""Normalize FHIR R4 resources into the portal's internal shape.

One pure function per resource category:

- normalize_person:        Patient             -> Person
- normalize_conditions:    [Condition]         -> [Condition]        (newest onset first)
- normalize_medications:   [MedicationRequest] -> [MedicationOrder]  (newest prescription first)
- normalize_documents:     [DocumentReference] -> [DocumentRef]      (newest first)
- normalize_observations:  [Observation]       -> [Observation]      (newest first)

List functions accept either a plain list of resources or a FHIR Bundle.
Entries of another resource kind are skipped silently, and dates that
cannot be parsed sort last. Only a wrong *top-level* shape is an error
(:class:`~ehr_connect.errors.InvalidResourceError`).

The module also builds the derived text used downstream: a short
document summary stored with each snapshot, and a sectioned clinical
summary.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import date, datetime, timezone
from typing import Any, TypeVar

from dateutil.parser import isoparse
from pydantic import BaseModel, ValidationError

from ehr_connect import fhir_models as fhir
from ehr_connect.errors import InvalidResourceError
from ehr_connect.models import (
    Condition,
    DocumentRef,
    MedicationOrder,
    NormalizedBundle,
    Observation,
    Person,
)

T = TypeVar("T")
R = TypeVar("R", bound=BaseModel)

_MIN_DATE = datetime.min.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def parse_date(value: str | None) -> datetime | None:
    """Parse a FHIR date/dateTime ("2024", "2024-03", "2024-03-15T10:00Z").

    Returns a timezone-aware datetime, or None when *value* is missing or
    not a valid date. Naive values are taken to be UTC.
    """
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = isoparse(value)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _recency_key(value: str | None) -> tuple[int, datetime]:
    parsed = parse_date(value)
    if parsed is None:
        return (0, _MIN_DATE)
    return (1, parsed)


def newest_first(items: list[T], date_of: Callable[[T], str | None]) -> list[T]:
    # sorted() is stable with reverse=True, so ties keep their input order
    return sorted(items, key=lambda item: _recency_key(date_of(item)), reverse=True)


def _entries(resources: Any) -> list[Any]:
    """Accept a list of resources or a Bundle; reject anything else."""
    if isinstance(resources, list):
        return resources
    if isinstance(resources, dict) and resources.get("resourceType") == "Bundle":
        entries = resources.get("entry")
        if not isinstance(entries, list):
            return []
        return [e.get("resource") for e in entries if isinstance(e, dict)]
    raise InvalidResourceError(
        f"Expected a list of resources or a Bundle, got {type(resources).__name__}"
    )


def _decode(
    resources: Iterable[Any], resource_type: str, model: type[R]
) -> list[R]:
    decoded: list[R] = []
    for raw in resources:
        if not isinstance(raw, dict) or raw.get("resourceType") != resource_type:
            continue
        try:
            decoded.append(model.model_validate(raw))
        except ValidationError:
            continue
    return decoded


def _concept_display(concept: fhir.CodeableConcept | None) -> str | None:
    if concept is None:
        return None
    first = concept.first
    return (first.display if first else None) or concept.text


def _concept_code(concept: fhir.CodeableConcept | None) -> str | None:
    if concept is None or concept.first is None:
        return None
    return concept.first.code


def _first_category(categories: list[fhir.CodeableConcept]) -> str | None:
    if not categories:
        return None
    return _concept_display(categories[0])


def format_number(value: float) -> str:
    """Render 4.0 as "4" and 4.25 as "4.25"."""
    if value.is_integer():
        return str(int(value))
    return repr(value)


def format_date(value: str | None) -> str:
    """Render a FHIR date as e.g. "Nov 18, 2024"; "Unknown" when missing."""
    if not value:
        return "Unknown"
    parsed = parse_date(value)
    if parsed is None:
        return value
    return f"{parsed:%b} {parsed.day}, {parsed.year}"


def calculate_age(birth_date: str | None, today: date | None = None) -> int | None:
    """Whole years since *birth_date*, not counting an unreached birthday."""
    born = parse_date(birth_date)
    if born is None:
        return None
    today = today or date.today()
    age = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        age -= 1
    return age


# ---------------------------------------------------------------------------
# Patient
# ---------------------------------------------------------------------------


def _is_mrn(identifier: fhir.Identifier) -> bool:
    concept = identifier.type
    if concept is not None:
        if any(c.code == "MR" for c in concept.coding):
            return True
        if concept.text and "mrn" in concept.text.lower():
            return True
    return bool(identifier.system and "mrn" in identifier.system.lower())


def _extract_mrn(identifiers: list[fhir.Identifier]) -> str | None:
    for identifier in identifiers:
        if identifier.value and _is_mrn(identifier):
            return identifier.value
    for identifier in identifiers:
        if identifier.value:
            return identifier.value
    return None


def _format_address(address: fhir.Address | None) -> str | None:
    if address is None:
        return None
    parts = [", ".join(address.line), address.city, address.state, address.postalCode]
    return ", ".join(p for p in parts if p) or None


def _telecom(patient: fhir.PatientResource, system: str) -> str | None:
    for contact in patient.telecom:
        if contact.system == system and contact.value:
            return contact.value
    return None


def normalize_person(resource: Any, today: date | None = None) -> Person:
    """Convert a FHIR Patient resource into a :class:`Person`.

    Args:
        resource: The decoded JSON of a Patient resource.
        today: Reference date for the age calculation (defaults to today).

    Raises:
        InvalidResourceError: If *resource* is not a Patient resource.
    """
    if not isinstance(resource, dict) or resource.get("resourceType") != "Patient":
        raise InvalidResourceError("Invalid Patient resource")
    try:
        patient = fhir.PatientResource.model_validate(resource)
    except ValidationError as exc:
        raise InvalidResourceError(f"Invalid Patient resource: {exc}") from exc

    official = [n for n in patient.name if n.use == "official"]
    name = (official or patient.name or [fhir.HumanName()])[0]
    first_name = " ".join(name.given)
    last_name = name.family or ""
    full_name = f"{first_name} {last_name}".strip() or (name.text or "")

    return Person(
        id=patient.id,
        name=full_name,
        first_name=first_name,
        last_name=last_name,
        gender=patient.gender or "unknown",
        birth_date=patient.birthDate,
        age=calculate_age(patient.birthDate, today),
        mrn=_extract_mrn(patient.identifier),
        phone=_telecom(patient, "phone"),
        email=_telecom(patient, "email"),
        address=_format_address(patient.address[0] if patient.address else None),
    )


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------


def _to_condition(c: fhir.ConditionResource) -> Condition:
    first = c.code.first if c.code else None
    return Condition(
        id=c.id,
        code=first.code if first else None,
        system=first.system if first else None,
        display=_concept_display(c.code) or "Unknown condition",
        clinical_status=_concept_code(c.clinicalStatus),
        verification_status=_concept_code(c.verificationStatus),
        category=_first_category(c.category) or "General",
        severity=_concept_display(c.severity),
        onset_date=c.onsetDateTime or c.recordedDate,
        note=c.note[0].text if c.note else None,
    )


def normalize_conditions(resources: Any) -> list[Condition]:
    """Normalize Condition resources, most recent onset first."""
    decoded = _decode(_entries(resources), "Condition", fhir.ConditionResource)
    return newest_first([_to_condition(c) for c in decoded], lambda c: c.onset_date)


# ---------------------------------------------------------------------------
# Medications
# ---------------------------------------------------------------------------


def _format_dose(dosage: fhir.Dosage | None) -> str | None:
    if dosage is None or not dosage.doseAndRate:
        return None
    dose = dosage.doseAndRate[0].doseQuantity
    if dose is None or dose.value is None:
        return None
    return f"{format_number(dose.value)} {dose.unit or ''}".strip()


def _to_medication(m: fhir.MedicationRequestResource) -> MedicationOrder:
    dosage = m.dosageInstruction[0] if m.dosageInstruction else None
    concept = m.medicationCodeableConcept
    reference = m.medicationReference
    dispense = m.dispenseRequest

    name = _concept_display(concept) or (reference.display if reference else None)
    frequency = None
    if dosage is not None and dosage.timing is not None:
        frequency = _concept_display(dosage.timing.code)

    return MedicationOrder(
        id=m.id,
        name=name or "Unknown medication",
        code=_concept_code(concept),
        status=m.status or "unknown",
        intent=m.intent or "order",
        dosage=(dosage.text if dosage else None) or _format_dose(dosage),
        frequency=frequency,
        route=_concept_display(dosage.route) if dosage else None,
        quantity=dispense.quantity.value if dispense and dispense.quantity else None,
        refills=(dispense.numberOfRepeatsAllowed if dispense else None) or 0,
        prescribed_date=m.authoredOn,
        instructions=dosage.patientInstruction if dosage else None,
    )


def normalize_medications(resources: Any) -> list[MedicationOrder]:
    """Normalize MedicationRequest resources, most recently prescribed first."""
    decoded = _decode(
        _entries(resources), "MedicationRequest", fhir.MedicationRequestResource
    )
    return newest_first(
        [_to_medication(m) for m in decoded], lambda m: m.prescribed_date
    )


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


def _to_document(d: fhir.DocumentReferenceResource) -> DocumentRef:
    attachment = d.content[0].attachment if d.content else None
    period = d.context.period if d.context else None
    return DocumentRef(
        id=d.id,
        type=_concept_display(d.type) or "Clinical Note",
        category=_first_category(d.category) or "General",
        date=d.date or (period.start if period else None),
        author=(d.author[0].display if d.author else None) or "Unknown",
        description=d.description,
        content=attachment.data if attachment else None,
        content_type=(attachment.contentType if attachment else None) or "text/plain",
        url=attachment.url if attachment else None,
    )


def normalize_documents(resources: Any) -> list[DocumentRef]:
    """Normalize DocumentReference resources, newest first."""
    decoded = _decode(
        _entries(resources), "DocumentReference", fhir.DocumentReferenceResource
    )
    return newest_first([_to_document(d) for d in decoded], lambda d: d.date)


# ---------------------------------------------------------------------------
# Observations
# ---------------------------------------------------------------------------


def _observation_value(o: fhir.ObservationResource) -> str:
    # Exactly one value[x] shape is rendered, in this order of preference
    if o.valueQuantity is not None and o.valueQuantity.value is not None:
        return format_number(o.valueQuantity.value)
    if o.valueString is not None:
        return o.valueString
    if o.valueCodeableConcept is not None:
        return _concept_display(o.valueCodeableConcept) or "N/A"
    if o.valueBoolean is not None:
        return "Yes" if o.valueBoolean else "No"
    return "N/A"


def _to_observation(o: fhir.ObservationResource) -> Observation:
    effective = o.effectiveDateTime
    if effective is None and o.effectivePeriod is not None:
        effective = o.effectivePeriod.start
    return Observation(
        id=o.id,
        code=_concept_code(o.code),
        display=_concept_display(o.code) or "Unknown",
        category=_first_category(o.category) or "General",
        value=_observation_value(o),
        unit=o.valueQuantity.unit if o.valueQuantity else None,
        reference_range=o.referenceRange[0].text if o.referenceRange else None,
        status=o.status or "unknown",
        date=effective or o.issued,
        interpretation=_concept_display(o.interpretation[0]) if o.interpretation else None,
    )


def normalize_observations(resources: Any) -> list[Observation]:
    """Normalize Observation resources, newest first."""
    decoded = _decode(_entries(resources), "Observation", fhir.ObservationResource)
    return newest_first([_to_observation(o) for o in decoded], lambda o: o.date)


# ---------------------------------------------------------------------------
# Bundles and derived text
# ---------------------------------------------------------------------------


def normalize_bundle(bundle: Any, today: date | None = None) -> dict[str, list[Any]]:
    """Split a mixed FHIR Bundle into normalized lists keyed by kind.

    Raises:
        InvalidResourceError: If *bundle* is not a Bundle resource.
    """
    if not isinstance(bundle, dict) or bundle.get("resourceType") != "Bundle":
        raise InvalidResourceError("Invalid FHIR Bundle")
    entries = _entries(bundle)
    return {
        "patients": [
            normalize_person(r, today)
            for r in entries
            if isinstance(r, dict) and r.get("resourceType") == "Patient"
        ],
        "conditions": normalize_conditions(entries),
        "medications": normalize_medications(entries),
        "documents": normalize_documents(entries),
        "observations": normalize_observations(entries),
    }


def summarize_documents(documents: list[DocumentRef], limit: int = 5) -> str:
    """One line per recent document, stored as a snapshot's clinical notes."""
    return "\n".join(
        f"{doc.type} ({doc.date or 'Unknown'}): {doc.description or 'No description'}"
        for doc in documents[:limit]
    )


def build_clinical_summary(bundle: NormalizedBundle) -> str:
    """Render a sectioned, human-readable summary of a normalized bundle.

    Sections: demographics, diagnoses (active or unspecified status),
    current medications (active or unknown status), the three most recent
    documents and the five most recent laboratory results.
    """
    lines: list[str] = []
    patient = bundle.patient

    lines += [
        "PATIENT INFORMATION",
        f"Name: {patient.name}",
        f"Age: {patient.age if patient.age is not None else 'Unknown'} years old",
        f"Gender: {patient.gender}",
        f"MRN: {patient.mrn or 'Unknown'}",
        "",
    ]

    if bundle.conditions:
        lines.append("DIAGNOSES")
        active = [
            c for c in bundle.conditions
            if c.clinical_status in (None, "active")
        ]
        for idx, condition in enumerate(active, start=1):
            entry = f"{idx}. {condition.display}"
            if condition.onset_date:
                entry += f" (since {format_date(condition.onset_date)})"
            lines.append(entry)
            if condition.note:
                lines.append(f"   Note: {condition.note}")
        lines.append("")

    if bundle.medications:
        lines.append("CURRENT MEDICATIONS")
        current = [m for m in bundle.medications if m.status in ("active", "unknown")]
        for idx, med in enumerate(current, start=1):
            entry = f"{idx}. {med.name}"
            if med.dosage:
                entry += f" - {med.dosage}"
            if med.frequency:
                entry += f" ({med.frequency})"
            lines.append(entry)
            if med.instructions:
                lines.append(f"   Instructions: {med.instructions}")
        lines.append("")

    if bundle.documents:
        lines.append("RECENT CLINICAL NOTES")
        for idx, doc in enumerate(bundle.documents[:3], start=1):
            lines.append(f"{idx}. {doc.type} - {format_date(doc.date)}")
            if doc.description:
                lines.append(f"   {doc.description}")
        lines.append("")

    labs = [o for o in bundle.observations if o.category.lower() == "laboratory"]
    if labs:
        lines.append("RECENT LAB RESULTS")
        for idx, lab in enumerate(labs[:5], start=1):
            entry = f"{idx}. {lab.display}: {lab.value}"
            if lab.unit:
                entry += f" {lab.unit}"
            if lab.interpretation:
                entry += f" ({lab.interpretation})"
            entry += f" - {format_date(lab.date)}"
            lines.append(entry)

    return "\n".join(lines).strip()
