"""Partial models of the FHIR R4 resources we read.

External payloads come from many EHR vendors and are frequently
incomplete or slightly off-spec. Rather than chaining ``.get()`` calls
through nested dicts, each resource kind is described here as a pydantic
model in which every field is optional and *lenient*: a sub-field that
fails validation is decoded as ``None`` (or an empty list) instead of
failing the whole resource. Unknown fields are ignored.

Only the fields the normalizer actually uses are modelled.
"""

from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, WrapValidator


def _none_on_error(value: Any, handler: Any) -> Any:
    try:
        return handler(value)
    except ValidationError:
        return None


def _drop_invalid_items(value: Any, handler: Any) -> Any:
    if not isinstance(value, list):
        return []
    try:
        return handler(value)
    except ValidationError:
        # Re-validate item by item and keep only the ones that parse
        kept = []
        for item in value:
            try:
                kept.extend(handler([item]))
            except ValidationError:
                continue
        return kept


OptStr = Annotated[Optional[str], WrapValidator(_none_on_error)]
OptBool = Annotated[Optional[bool], WrapValidator(_none_on_error)]
OptNumber = Annotated[Optional[float], WrapValidator(_none_on_error)]
OptInt = Annotated[Optional[int], WrapValidator(_none_on_error)]
StrList = Annotated[list[str], WrapValidator(_drop_invalid_items)]


class _Element(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Coding(_Element):
    system: OptStr = None
    code: OptStr = None
    display: OptStr = None


CodingList = Annotated[list[Coding], WrapValidator(_drop_invalid_items)]


class CodeableConcept(_Element):
    coding: CodingList = []
    text: OptStr = None

    @property
    def first(self) -> Optional[Coding]:
        return self.coding[0] if self.coding else None


OptConcept = Annotated[Optional[CodeableConcept], WrapValidator(_none_on_error)]
ConceptList = Annotated[list[CodeableConcept], WrapValidator(_drop_invalid_items)]


class Reference(_Element):
    reference: OptStr = None
    display: OptStr = None


OptReference = Annotated[Optional[Reference], WrapValidator(_none_on_error)]
ReferenceList = Annotated[list[Reference], WrapValidator(_drop_invalid_items)]


class Quantity(_Element):
    value: OptNumber = None
    unit: OptStr = None
    code: OptStr = None


OptQuantity = Annotated[Optional[Quantity], WrapValidator(_none_on_error)]


class Period(_Element):
    start: OptStr = None
    end: OptStr = None


OptPeriod = Annotated[Optional[Period], WrapValidator(_none_on_error)]


class Annotation(_Element):
    text: OptStr = None


AnnotationList = Annotated[list[Annotation], WrapValidator(_drop_invalid_items)]


# --- Patient ---


class HumanName(_Element):
    use: OptStr = None
    text: OptStr = None
    family: OptStr = None
    given: StrList = []


class Identifier(_Element):
    system: OptStr = None
    value: OptStr = None
    type: OptConcept = None


class ContactPoint(_Element):
    system: OptStr = None
    value: OptStr = None
    use: OptStr = None


class Address(_Element):
    line: StrList = []
    city: OptStr = None
    state: OptStr = None
    postalCode: OptStr = None


class PatientResource(_Element):
    resourceType: str
    id: OptStr = None
    name: Annotated[list[HumanName], WrapValidator(_drop_invalid_items)] = []
    gender: OptStr = None
    birthDate: OptStr = None
    identifier: Annotated[list[Identifier], WrapValidator(_drop_invalid_items)] = []
    telecom: Annotated[list[ContactPoint], WrapValidator(_drop_invalid_items)] = []
    address: Annotated[list[Address], WrapValidator(_drop_invalid_items)] = []


# --- Condition ---


class ConditionResource(_Element):
    resourceType: str
    id: OptStr = None
    code: OptConcept = None
    clinicalStatus: OptConcept = None
    verificationStatus: OptConcept = None
    category: ConceptList = []
    severity: OptConcept = None
    onsetDateTime: OptStr = None
    recordedDate: OptStr = None
    note: AnnotationList = []


# --- MedicationRequest ---


class DoseAndRate(_Element):
    doseQuantity: OptQuantity = None


class Timing(_Element):
    code: OptConcept = None


class Dosage(_Element):
    text: OptStr = None
    patientInstruction: OptStr = None
    timing: Annotated[Optional[Timing], WrapValidator(_none_on_error)] = None
    route: OptConcept = None
    doseAndRate: Annotated[list[DoseAndRate], WrapValidator(_drop_invalid_items)] = []


class DispenseRequest(_Element):
    quantity: OptQuantity = None
    numberOfRepeatsAllowed: OptInt = None


class MedicationRequestResource(_Element):
    resourceType: str
    id: OptStr = None
    status: OptStr = None
    intent: OptStr = None
    medicationCodeableConcept: OptConcept = None
    medicationReference: OptReference = None
    authoredOn: OptStr = None
    dosageInstruction: Annotated[list[Dosage], WrapValidator(_drop_invalid_items)] = []
    dispenseRequest: Annotated[
        Optional[DispenseRequest], WrapValidator(_none_on_error)
    ] = None


# --- DocumentReference ---


class Attachment(_Element):
    contentType: OptStr = None
    data: OptStr = None
    url: OptStr = None


class DocumentContent(_Element):
    attachment: Annotated[Optional[Attachment], WrapValidator(_none_on_error)] = None


class DocumentContext(_Element):
    period: OptPeriod = None


class DocumentReferenceResource(_Element):
    resourceType: str
    id: OptStr = None
    type: OptConcept = None
    category: ConceptList = []
    date: OptStr = None
    author: ReferenceList = []
    description: OptStr = None
    content: Annotated[list[DocumentContent], WrapValidator(_drop_invalid_items)] = []
    context: Annotated[Optional[DocumentContext], WrapValidator(_none_on_error)] = None


# --- Observation ---


class ReferenceRange(_Element):
    text: OptStr = None


class ObservationResource(_Element):
    resourceType: str
    id: OptStr = None
    status: OptStr = None
    code: OptConcept = None
    category: ConceptList = []
    valueQuantity: OptQuantity = None
    valueString: OptStr = None
    valueCodeableConcept: OptConcept = None
    valueBoolean: OptBool = None
    effectiveDateTime: OptStr = None
    effectivePeriod: OptPeriod = None
    issued: OptStr = None
    referenceRange: Annotated[list[ReferenceRange], WrapValidator(_drop_invalid_items)] = []
    interpretation: ConceptList = []
