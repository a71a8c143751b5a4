"""
Domain records read from the EMR store.

These are the inputs of the assembly pipeline. They are frozen: the
bundle engine only reads them.
"""
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Tuple, Union

SNOMED_SYSTEM = "http://snomed.info/sct"

# Observation categories produced by the record source
CHIEF_COMPLAINT = "chief_complaint"
MEDICAL_HISTORY = "medical_history"
PHYSICAL_EXAMINATION = "physical_examination"
DIAGNOSTIC = "diagnostic"


@dataclass(frozen=True)
class PatientRecord:
    uuid: Optional[str]
    name: Optional[str] = None
    gender: Optional[str] = None
    birth_date: Optional[Union[date, datetime]] = None


@dataclass(frozen=True)
class ProviderRecord:
    uuid: Optional[str]
    name: Optional[str] = None


@dataclass(frozen=True)
class ConceptRecord:
    """A coded concept; ``code`` may be absent for locally named concepts."""
    display: Optional[str]
    code: Optional[str] = None
    system: str = SNOMED_SYSTEM


@dataclass(frozen=True)
class EncounterRecord:
    uuid: Optional[str]
    encounter_datetime: Optional[datetime]
    patient: Optional[PatientRecord]
    encounter_id: Optional[int] = None
    providers: Tuple[ProviderRecord, ...] = ()
    visit_type: Optional[str] = None
    encounter_type: Optional[str] = None


@dataclass(frozen=True)
class DrugRecord:
    uuid: Optional[str]
    name: Optional[str] = None
    concept: Optional[ConceptRecord] = None
    strength: Optional[str] = None
    dosage_form: Optional[str] = None


@dataclass(frozen=True)
class DrugOrderRecord:
    uuid: Optional[str]
    encounter: Optional[EncounterRecord]
    drug: Optional[DrugRecord] = None
    drug_non_coded: Optional[str] = None
    dosing_instructions: Optional[str] = None
    dose: Optional[float] = None
    dose_units: Optional[str] = None
    route: Optional[str] = None
    frequency: Optional[str] = None
    duration: Optional[int] = None
    duration_units: Optional[str] = None
    quantity: Optional[float] = None
    quantity_units: Optional[str] = None
    as_needed: bool = False
    date_activated: Optional[datetime] = None

    @property
    def source_id(self) -> Optional[str]:
        return self.uuid

    @property
    def encounter_uuid(self) -> Optional[str]:
        return self.encounter.uuid if self.encounter else None


@dataclass(frozen=True)
class ObservationRecord:
    uuid: Optional[str]
    encounter: Optional[EncounterRecord]
    category: str
    concept: Optional[ConceptRecord] = None
    value_text: Optional[str] = None
    value_numeric: Optional[float] = None
    units: Optional[str] = None
    value_concept: Optional[ConceptRecord] = None
    obs_datetime: Optional[datetime] = None
    document_url: Optional[str] = None
    content_type: Optional[str] = None

    @property
    def source_id(self) -> Optional[str]:
        return self.uuid

    @property
    def encounter_uuid(self) -> Optional[str]:
        return self.encounter.uuid if self.encounter else None


DomainRecord = Union[DrugOrderRecord, ObservationRecord]
