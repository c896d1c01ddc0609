"""Tests for FHIR -> internal normalization.

Every normalizer is pure, so these tests just feed in hand-written FHIR
JSON and check the flattened output. Most cases focus on the messy
inputs real EHRs send: missing fields, wrong types, unparseable dates and
resources of the wrong kind mixed into a Bundle.
"""

from datetime import date

import pytest

from ehr_connect.errors import InvalidResourceError
from ehr_connect.models import NormalizedBundle
from ehr_connect.normalizer import (
    build_clinical_summary,
    calculate_age,
    format_date,
    normalize_bundle,
    normalize_conditions,
    normalize_documents,
    normalize_medications,
    normalize_observations,
    normalize_person,
    parse_date,
    summarize_documents,
)

TODAY = date(2024, 12, 1)


def _patient(**overrides: object) -> dict[str, object]:
    resource: dict[str, object] = {
        "resourceType": "Patient",
        "id": "pat-1",
        "name": [
            {"use": "nickname", "given": ["Kiki"], "family": "W"},
            {"use": "official", "given": ["Keisha", "Ann"], "family": "Washington"},
        ],
        "gender": "female",
        "birthDate": "1985-03-22",
        "identifier": [
            {"system": "urn:oid:ssn", "value": "000-00-0000"},
            {"type": {"coding": [{"code": "MR"}]}, "value": "MRN005678"},
        ],
        "telecom": [
            {"system": "email", "value": "keisha@example.com"},
            {"system": "phone", "value": "555-0101"},
        ],
        "address": [
            {"line": ["456 Blue Hill Ave"], "city": "Boston", "state": "MA", "postalCode": "02121"}
        ],
    }
    resource.update(overrides)
    return resource


def _condition(cid: str, onset: object = None, **overrides: object) -> dict[str, object]:
    resource: dict[str, object] = {
        "resourceType": "Condition",
        "id": cid,
        "code": {"coding": [{"system": "http://snomed.info/sct", "code": "195967001", "display": "Asthma"}]},
        "clinicalStatus": {"coding": [{"code": "active"}]},
    }
    if onset is not None:
        resource["onsetDateTime"] = onset
    resource.update(overrides)
    return resource


# --- Helpers ---


class TestDates:
    def test_parse_partial_dates(self) -> None:
        assert parse_date("2024").year == 2024
        assert parse_date("2024-03").month == 3
        assert parse_date("2024-03-15T10:00:00Z").hour == 10

    def test_unparseable_dates_are_none(self) -> None:
        assert parse_date("sometime last spring") is None
        assert parse_date(None) is None
        assert parse_date("") is None

    def test_format_date(self) -> None:
        assert format_date("2024-11-18") == "Nov 18, 2024"
        assert format_date(None) == "Unknown"
        assert format_date("garbage") == "garbage"

    def test_calculate_age_before_and_after_birthday(self) -> None:
        assert calculate_age("1985-03-22", date(2024, 3, 21)) == 38
        assert calculate_age("1985-03-22", date(2024, 3, 22)) == 39
        assert calculate_age(None, TODAY) is None
        assert calculate_age("not-a-date", TODAY) is None


# --- Patient ---


class TestNormalizePerson:
    def test_full_patient(self) -> None:
        person = normalize_person(_patient(), TODAY)

        assert person.id == "pat-1"
        assert person.name == "Keisha Ann Washington"
        assert person.first_name == "Keisha Ann"
        assert person.last_name == "Washington"
        assert person.gender == "female"
        assert person.age == 39
        assert person.mrn == "MRN005678"
        assert person.phone == "555-0101"
        assert person.email == "keisha@example.com"
        assert person.address == "456 Blue Hill Ave, Boston, MA, 02121"

    def test_first_name_used_when_no_official_name(self) -> None:
        person = normalize_person(_patient(name=[{"given": ["Jo"], "family": "Doe"}]), TODAY)
        assert person.name == "Jo Doe"

    def test_mrn_by_type_text_or_system(self) -> None:
        by_text = _patient(identifier=[
            {"value": "X1"},
            {"type": {"text": "Hospital MRN"}, "value": "M-1"},
        ])
        by_system = _patient(identifier=[
            {"value": "X1"},
            {"system": "urn:example:mrn", "value": "M-2"},
        ])
        assert normalize_person(by_text, TODAY).mrn == "M-1"
        assert normalize_person(by_system, TODAY).mrn == "M-2"

    def test_mrn_falls_back_to_first_identifier(self) -> None:
        patient = _patient(identifier=[{"system": "urn:oid:other", "value": "ABC"}])
        assert normalize_person(patient, TODAY).mrn == "ABC"

    def test_malformed_optional_fields_degrade(self) -> None:
        """Wrong-typed sub-fields become placeholders instead of errors."""
        patient = {
            "resourceType": "Patient",
            "id": "pat-2",
            "name": "not a list",
            "gender": 5,
            "birthDate": "unknown",
            "identifier": [{"value": 12}, "junk"],
            "telecom": None,
            "address": [{"line": "oops", "city": "Boston"}],
        }
        person = normalize_person(patient, TODAY)

        assert person.name == ""
        assert person.gender == "unknown"
        assert person.age is None
        assert person.mrn is None
        assert person.phone is None
        assert person.address == "Boston"

    @pytest.mark.parametrize(
        "resource",
        [None, [], "Patient", {"resourceType": "Condition"}, {"id": "no-type"}],
    )
    def test_wrong_shape_raises(self, resource: object) -> None:
        with pytest.raises(InvalidResourceError):
            normalize_person(resource, TODAY)


# --- Lists ---


class TestNormalizeConditions:
    def test_sorted_newest_first_with_bad_dates_last(self) -> None:
        conditions = normalize_conditions([
            _condition("old", "2019-01-01"),
            _condition("undated"),
            _condition("new", "2024-06-01"),
            _condition("garbled", "next tuesday"),
            _condition("mid", "2021-05"),
        ])
        ids = [c.id for c in conditions]
        assert ids[:3] == ["new", "mid", "old"]
        assert set(ids[3:]) == {"undated", "garbled"}

    def test_recorded_date_is_the_fallback(self) -> None:
        [condition] = normalize_conditions([_condition("c", recordedDate="2022-02-02")])
        assert condition.onset_date == "2022-02-02"

    def test_fields(self) -> None:
        [condition] = normalize_conditions([
            _condition(
                "c1",
                "2020-01-01",
                category=[{"coding": [{"display": "Problem List Item"}]}],
                severity={"text": "Moderate"},
                note=[{"text": "Worse in spring"}],
            )
        ])
        assert condition.display == "Asthma"
        assert condition.code == "195967001"
        assert condition.clinical_status == "active"
        assert condition.category == "Problem List Item"
        assert condition.severity == "Moderate"
        assert condition.note == "Worse in spring"

    def test_defaults_for_bare_resource(self) -> None:
        [condition] = normalize_conditions([{"resourceType": "Condition"}])
        assert condition.display == "Unknown condition"
        assert condition.category == "General"
        assert condition.clinical_status is None

    def test_other_kinds_are_skipped(self) -> None:
        conditions = normalize_conditions([
            _condition("c1", "2024-01-01"),
            {"resourceType": "Observation", "id": "o1"},
            "garbage",
            None,
        ])
        assert [c.id for c in conditions] == ["c1"]

    def test_accepts_a_bundle(self) -> None:
        bundle = {
            "resourceType": "Bundle",
            "entry": [{"resource": _condition("c1", "2024-01-01")}, {"search": {}}],
        }
        assert [c.id for c in normalize_conditions(bundle)] == ["c1"]

    @pytest.mark.parametrize("resources", [None, "x", 42, {"resourceType": "Patient"}])
    def test_wrong_top_level_shape_raises(self, resources: object) -> None:
        with pytest.raises(InvalidResourceError):
            normalize_conditions(resources)


class TestNormalizeMedications:
    def test_structured_dose(self) -> None:
        [med] = normalize_medications([{
            "resourceType": "MedicationRequest",
            "id": "m1",
            "status": "active",
            "medicationCodeableConcept": {
                "coding": [{"code": "197361", "display": "Amlodipine 5 MG Oral Tablet"}]
            },
            "authoredOn": "2024-05-01",
            "dosageInstruction": [{
                "timing": {"code": {"text": "Once daily"}},
                "route": {"coding": [{"display": "Oral"}]},
                "doseAndRate": [{"doseQuantity": {"value": 5.0, "unit": "mg"}}],
                "patientInstruction": "Take in the morning",
            }],
            "dispenseRequest": {"quantity": {"value": 30}, "numberOfRepeatsAllowed": 3},
        }])
        assert med.name == "Amlodipine 5 MG Oral Tablet"
        assert med.code == "197361"
        assert med.dosage == "5 mg"
        assert med.frequency == "Once daily"
        assert med.route == "Oral"
        assert med.quantity == 30
        assert med.refills == 3
        assert med.instructions == "Take in the morning"

    def test_text_dosage_and_reference_name(self) -> None:
        [med] = normalize_medications([{
            "resourceType": "MedicationRequest",
            "medicationReference": {"reference": "Medication/9", "display": "Insulin glargine"},
            "dosageInstruction": [{"text": "10 units at bedtime"}],
        }])
        assert med.name == "Insulin glargine"
        assert med.dosage == "10 units at bedtime"
        assert med.status == "unknown"
        assert med.intent == "order"
        assert med.refills == 0

    def test_sorted_by_prescription_date(self) -> None:
        meds = normalize_medications([
            {"resourceType": "MedicationRequest", "id": "a", "authoredOn": "2023-01-01"},
            {"resourceType": "MedicationRequest", "id": "b", "authoredOn": "2024-01-01"},
            {"resourceType": "MedicationRequest", "id": "c"},
        ])
        assert [m.id for m in meds] == ["b", "a", "c"]


class TestNormalizeDocuments:
    def test_fields_and_period_fallback(self) -> None:
        docs = normalize_documents([
            {
                "resourceType": "DocumentReference",
                "id": "d1",
                "type": {"text": "Discharge Summary"},
                "context": {"period": {"start": "2024-02-01"}},
                "author": [{"display": "Dr. Who"}],
                "content": [{"attachment": {"contentType": "text/html", "url": "Binary/1"}}],
            },
            {"resourceType": "DocumentReference", "id": "d2", "date": "2024-03-01"},
        ])
        assert [d.id for d in docs] == ["d2", "d1"]
        first, second = docs
        assert first.type == "Clinical Note"
        assert first.author == "Unknown"
        assert second.type == "Discharge Summary"
        assert second.date == "2024-02-01"
        assert second.author == "Dr. Who"
        assert second.content_type == "text/html"
        assert second.url == "Binary/1"


class TestNormalizeObservations:
    def _obs(self, oid: str, **fields: object) -> dict[str, object]:
        return {"resourceType": "Observation", "id": oid, **fields}

    def test_value_shapes(self) -> None:
        observations = normalize_observations([
            self._obs("q", effectiveDateTime="2024-01-05",
                      valueQuantity={"value": 7.25, "unit": "%"}),
            self._obs("s", effectiveDateTime="2024-01-04", valueString="Positive"),
            self._obs("c", effectiveDateTime="2024-01-03",
                      valueCodeableConcept={"text": "Detected"}),
            self._obs("b", effectiveDateTime="2024-01-02", valueBoolean=False),
            self._obs("n", effectiveDateTime="2024-01-01"),
        ])
        values = {o.id: o.value for o in observations}
        assert values == {"q": "7.25", "s": "Positive", "c": "Detected", "b": "No", "n": "N/A"}
        assert observations[0].unit == "%"

    def test_whole_numbers_render_without_decimal(self) -> None:
        [obs] = normalize_observations([self._obs("q", valueQuantity={"value": 140.0})])
        assert obs.value == "140"

    def test_date_fallbacks(self) -> None:
        observations = normalize_observations([
            self._obs("period", effectivePeriod={"start": "2024-02-01"}),
            self._obs("issued", issued="2024-03-01T08:00:00Z"),
        ])
        assert [o.id for o in observations] == ["issued", "period"]
        assert observations[1].date == "2024-02-01"

    def test_category_and_interpretation(self) -> None:
        [obs] = normalize_observations([self._obs(
            "lab",
            code={"coding": [{"code": "4548-4", "display": "Hemoglobin A1c"}]},
            category=[{"coding": [{"code": "laboratory", "display": "Laboratory"}]}],
            interpretation=[{"coding": [{"display": "High"}]}],
            referenceRange=[{"text": "<5.7"}],
            status="final",
        )])
        assert obs.code == "4548-4"
        assert obs.display == "Hemoglobin A1c"
        assert obs.category == "Laboratory"
        assert obs.interpretation == "High"
        assert obs.reference_range == "<5.7"
        assert obs.status == "final"


# --- Bundles and summaries ---


class TestBundleAndSummary:
    def test_normalize_bundle_groups_by_kind(self) -> None:
        bundle = {
            "resourceType": "Bundle",
            "entry": [
                {"resource": _patient()},
                {"resource": _condition("c1", "2024-01-01")},
                {"resource": {"resourceType": "Observation", "id": "o1"}},
                {"resource": {"resourceType": "Encounter", "id": "e1"}},
            ],
        }
        grouped = normalize_bundle(bundle, TODAY)
        assert [p.id for p in grouped["patients"]] == ["pat-1"]
        assert [c.id for c in grouped["conditions"]] == ["c1"]
        assert [o.id for o in grouped["observations"]] == ["o1"]
        assert grouped["medications"] == []

    def test_normalize_bundle_rejects_non_bundles(self) -> None:
        with pytest.raises(InvalidResourceError):
            normalize_bundle([_patient()])

    def test_summarize_documents(self) -> None:
        docs = normalize_documents([
            {"resourceType": "DocumentReference", "type": {"text": "Progress Note"},
             "date": "2024-05-01", "description": "Follow-up"},
            {"resourceType": "DocumentReference"},
        ])
        assert summarize_documents(docs) == (
            "Progress Note (2024-05-01): Follow-up\n"
            "Clinical Note (Unknown): No description"
        )

    def test_clinical_summary_sections(self) -> None:
        bundle = NormalizedBundle(
            patient=normalize_person(_patient(), TODAY),
            conditions=normalize_conditions([
                _condition("active", "2020-04-10"),
                _condition("resolved", "2010-01-01",
                           clinicalStatus={"coding": [{"code": "resolved"}]},
                           code={"text": "Chickenpox"}),
            ]),
            medications=normalize_medications([{
                "resourceType": "MedicationRequest",
                "status": "active",
                "medicationCodeableConcept": {"text": "Albuterol inhaler"},
                "dosageInstruction": [{"text": "2 puffs"}],
            }]),
            observations=normalize_observations([
                {"resourceType": "Observation", "code": {"text": "Eosinophils"},
                 "category": [{"coding": [{"code": "laboratory", "display": "Laboratory"}]}],
                 "valueQuantity": {"value": 0.45, "unit": "10*3/uL"},
                 "effectiveDateTime": "2024-11-05"},
                {"resourceType": "Observation", "code": {"text": "Heart rate"},
                 "category": [{"coding": [{"display": "Vital Signs"}]}],
                 "valueQuantity": {"value": 72}},
            ]),
        )
        summary = build_clinical_summary(bundle)

        assert summary.startswith("PATIENT INFORMATION\nName: Keisha Ann Washington")
        assert "Age: 39 years old" in summary
        assert "1. Asthma (since Apr 10, 2020)" in summary
        assert "Chickenpox" not in summary
        assert "1. Albuterol inhaler - 2 puffs" in summary
        assert "1. Eosinophils: 0.45 10*3/uL - Nov 5, 2024" in summary
        assert "Heart rate" not in summary
        assert "RECENT CLINICAL NOTES" not in summary
        assert build_clinical_summary(bundle) == summary
