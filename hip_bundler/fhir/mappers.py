"""
FHIR Resource Mappers

Maps EMR domain records to FHIR R4B resources using the fhir.resources
library for FHIR compliance.

Mappings:
- PatientRecord → Patient
- ProviderRecord → Practitioner
- EncounterRecord → Encounter
- DrugOrderRecord → Medication + MedicationRequest
- ObservationRecord → Condition (chief complaints, medical history)
- ObservationRecord → Observation (physical examination)
- ObservationRecord → DiagnosticReport (radiology, patient documents)

Mappers are pure: they never touch the database or the bundle. A missing
required field raises MappingError; the caller decides whether that skips
the record or aborts the document.
"""
from typing import Optional, Dict, Any, Tuple
from datetime import datetime, timezone
import re

from fhir.resources.R4B.patient import Patient
from fhir.resources.R4B.practitioner import Practitioner
from fhir.resources.R4B.encounter import Encounter
from fhir.resources.R4B.medication import Medication
from fhir.resources.R4B.medicationrequest import MedicationRequest
from fhir.resources.R4B.condition import Condition
from fhir.resources.R4B.observation import Observation
from fhir.resources.R4B.diagnosticreport import DiagnosticReport
from fhir.resources.R4B.reference import Reference

from .context import OrgContext
from .errors import MappingError
from .identity import identifier_for, reference_to, resource_id
from .records import (
    ConceptRecord,
    DrugOrderRecord,
    EncounterRecord,
    ObservationRecord,
    PatientRecord,
    ProviderRecord,
)

ACT_CODE_SYSTEM = "http://terminology.hl7.org/CodeSystem/v3-ActCode"
CONDITION_CLINICAL_SYSTEM = "http://terminology.hl7.org/CodeSystem/condition-clinical"

STRENGTH_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([A-Za-z%/]+)\s*$")

GENDER_MAP = {
    "M": "male",
    "F": "female",
    "O": "other",
}


def as_aware(value: Optional[datetime]) -> Optional[datetime]:
    """EMR timestamps are stored naive in UTC; FHIR instants need an offset."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def codeable_concept(concept: ConceptRecord, fallback_text: Optional[str] = None) -> Dict[str, Any]:
    """Build a CodeableConcept dict from a concept record."""
    text = concept.display or fallback_text
    cc: Dict[str, Any] = {}
    if concept.code:
        coding = {"system": concept.system, "code": concept.code}
        if concept.display:
            coding["display"] = concept.display
        cc["coding"] = [coding]
    if text:
        cc["text"] = text
    return cc


def _has_concept(concept: Optional[ConceptRecord]) -> bool:
    return concept is not None and bool(concept.code or concept.display)


def _strength_ratio(strength: Optional[str], dosage_form: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Parse an EMR strength such as "500 mg" into a Ratio per one dose form.

    Free-text strengths ("as directed") have no ratio and return None.
    """
    match = STRENGTH_PATTERN.match(strength or "")
    if match is None:
        return None
    value, unit = match.groups()
    return {
        "numerator": {"value": float(value), "unit": unit},
        "denominator": {"value": 1, "unit": dosage_form or "unit"}
    }


class PatientMapper:
    """Maps PatientRecord to FHIR Patient resource."""

    @staticmethod
    def map(patient: Optional[PatientRecord], org: OrgContext) -> Patient:
        """
        Convert an EMR patient to a FHIR Patient resource.

        Args:
            patient: Patient record from the encounter
            org: Org context for identifier systems

        Returns:
            FHIR Patient resource

        Raises:
            MappingError: If the patient is missing or has neither uuid nor name
        """
        if patient is None:
            raise MappingError("patient", None)
        if not (patient.uuid or patient.name):
            raise MappingError("patient", None, "patient has neither uuid nor name")

        patient_id = resource_id(patient.uuid)
        patient_dict = {
            "resourceType": "Patient",
            "id": patient_id,
            "identifier": [identifier_for(org, "patient", patient_id)],
        }

        if patient.name:
            patient_dict["name"] = [{"text": patient.name}]

        if patient.gender:
            patient_dict["gender"] = GENDER_MAP.get(patient.gender.upper(), "unknown")

        if patient.birth_date:
            birth_date = patient.birth_date
            if isinstance(birth_date, datetime):
                birth_date = birth_date.date()
            patient_dict["birthDate"] = birth_date

        return Patient(**patient_dict)


class PractitionerMapper:
    """Maps ProviderRecord to FHIR Practitioner resource."""

    @staticmethod
    def map(provider: Optional[ProviderRecord], org: OrgContext) -> Practitioner:
        if provider is None:
            raise MappingError("provider", None)

        practitioner_id = resource_id(provider.uuid)
        practitioner_dict = {
            "resourceType": "Practitioner",
            "id": practitioner_id,
            "identifier": [identifier_for(org, "practitioner", practitioner_id)],
        }
        if provider.name:
            practitioner_dict["name"] = [{"text": provider.name}]

        return Practitioner(**practitioner_dict)


class EncounterMapper:
    """Maps EncounterRecord to FHIR Encounter resource."""

    @staticmethod
    def map(
        encounter: Optional[EncounterRecord],
        patient_reference: Reference,
        org: OrgContext
    ) -> Encounter:
        """
        Convert an EMR encounter to a FHIR Encounter resource.

        Args:
            encounter: Encounter record owning the document's records
            patient_reference: Reference to the Patient resource
            org: Org context for identifier systems

        Returns:
            FHIR Encounter resource (ambulatory, finished)

        Raises:
            MappingError: If the encounter or its timestamp is missing
        """
        if encounter is None:
            raise MappingError("encounter", None)
        if encounter.encounter_datetime is None:
            raise MappingError("encounter_datetime", encounter.uuid)

        encounter_id = resource_id(encounter.uuid)
        encounter_dict = {
            "resourceType": "Encounter",
            "id": encounter_id,
            "identifier": [identifier_for(org, "encounter", encounter_id)],
            "status": "finished",
            "class": {
                "system": ACT_CODE_SYSTEM,
                "code": "AMB",
                "display": "ambulatory"
            },
            "subject": patient_reference,
            "period": {"start": as_aware(encounter.encounter_datetime)},
        }

        if encounter.encounter_type:
            encounter_dict["type"] = [{"text": encounter.encounter_type}]

        return Encounter(**encounter_dict)


class MedicationMapper:
    """Maps the drug of a DrugOrderRecord to FHIR Medication resource."""

    @staticmethod
    def map(order: DrugOrderRecord, org: OrgContext) -> Optional[Medication]:
        """
        Convert the ordered drug to a FHIR Medication resource.

        Returns None when the drug has no resolvable medication concept
        (non-coded drugs, drugs without a concept); such orders are
        skipped rather than emitted incomplete.
        """
        drug = order.drug
        if drug is None or not _has_concept(drug.concept):
            return None

        medication_id = resource_id(drug.uuid)
        medication_dict = {
            "resourceType": "Medication",
            "id": medication_id,
            "identifier": [identifier_for(org, "medication", medication_id)],
            "status": "active",
            "code": codeable_concept(drug.concept, fallback_text=drug.name),
        }
        # The drug name is what prescribers recognise; prefer it as text
        if drug.name:
            medication_dict["code"]["text"] = drug.name

        if drug.dosage_form:
            medication_dict["form"] = {"text": drug.dosage_form}

        strength = _strength_ratio(drug.strength, drug.dosage_form)
        if strength is not None:
            medication_dict["ingredient"] = [{
                "itemCodeableConcept": codeable_concept(drug.concept),
                "strength": strength
            }]

        return Medication(**medication_dict)

    @staticmethod
    def map_pair(
        order: DrugOrderRecord,
        patient_reference: Reference,
        requester_reference: Optional[Reference],
        org: OrgContext
    ) -> Optional[Tuple[Medication, MedicationRequest]]:
        """
        Map one drug order to its Medication and MedicationRequest.

        Returns None when the medication cannot be resolved; the request is
        then dropped too so no request points at a missing medication.
        """
        medication = MedicationMapper.map(order, org)
        if medication is None:
            return None

        request = MedicationRequestMapper.map(
            order,
            patient_reference,
            requester_reference,
            reference_to(medication),
            org
        )
        return medication, request


class MedicationRequestMapper:
    """Maps DrugOrderRecord to FHIR MedicationRequest resource."""

    @staticmethod
    def map(
        order: DrugOrderRecord,
        patient_reference: Reference,
        requester_reference: Optional[Reference],
        medication_reference: Optional[Reference],
        org: OrgContext
    ) -> MedicationRequest:
        """
        Convert a drug order to a FHIR MedicationRequest resource.

        Args:
            order: Drug order record
            patient_reference: Reference to the Patient resource
            requester_reference: Reference to the prescribing Practitioner
            medication_reference: Reference to the Medication resource
            org: Org context for identifier systems

        Returns:
            FHIR MedicationRequest resource

        Raises:
            MappingError: If the encounter or the drug is missing
        """
        if order.encounter is None:
            raise MappingError("encounter", order.uuid)

        request_id = resource_id(order.uuid)
        med_dict = {
            "resourceType": "MedicationRequest",
            "id": request_id,
            "identifier": [identifier_for(org, "medication-request", request_id)],
            "status": "active",
            "intent": "order",
            "subject": patient_reference,
            "authoredOn": as_aware(order.date_activated or order.encounter.encounter_datetime),
        }

        if medication_reference is not None:
            med_dict["medicationReference"] = medication_reference
        elif order.drug_non_coded:
            med_dict["medicationCodeableConcept"] = {"text": order.drug_non_coded}
        else:
            raise MappingError("drug", order.uuid)

        if requester_reference is not None:
            med_dict["requester"] = requester_reference

        dosage_instruction = {}

        if order.dosing_instructions:
            dosage_instruction["text"] = order.dosing_instructions

        if order.route:
            dosage_instruction["route"] = {"text": order.route}

        timing = {}
        if order.frequency:
            timing["code"] = {"text": order.frequency}
        if order.duration:
            timing["repeat"] = {
                "boundsDuration": {
                    "value": order.duration,
                    "unit": order.duration_units or None
                }
            }
        if timing:
            dosage_instruction["timing"] = timing

        if order.dose is not None:
            dose_quantity = {"value": order.dose}
            if order.dose_units:
                dose_quantity["unit"] = order.dose_units
            dosage_instruction["doseAndRate"] = [{"doseQuantity": dose_quantity}]

        # R4B spells the PRN flag as asNeededBoolean
        if order.as_needed:
            dosage_instruction["asNeededBoolean"] = True

        if dosage_instruction:
            med_dict["dosageInstruction"] = [dosage_instruction]

        if order.quantity is not None:
            quantity = {"value": order.quantity}
            if order.quantity_units:
                quantity["unit"] = order.quantity_units
            med_dict["dispenseRequest"] = {"quantity": quantity}

        return MedicationRequest(**med_dict)


class ConditionMapper:
    """Maps chief complaint and medical history observations to FHIR Condition."""

    @staticmethod
    def map(
        obs: ObservationRecord,
        patient_reference: Reference,
        encounter_reference: Optional[Reference],
        recorder_reference: Optional[Reference],
        org: OrgContext,
        category: Optional[ConceptRecord] = None
    ) -> Condition:
        """
        Convert a coded complaint or history entry to a FHIR Condition.

        The coded answer (value_concept) is the condition; the question
        concept is used when the observation carries no coded answer.

        Raises:
            MappingError: If neither a coded answer nor a concept is present
        """
        concept = obs.value_concept if _has_concept(obs.value_concept) else obs.concept
        if not _has_concept(concept):
            raise MappingError("concept", obs.uuid)

        condition_id = resource_id(obs.uuid)
        condition_dict = {
            "resourceType": "Condition",
            "id": condition_id,
            "identifier": [identifier_for(org, "condition", condition_id)],
            "clinicalStatus": {
                "coding": [{
                    "system": CONDITION_CLINICAL_SYSTEM,
                    "code": "active"
                }]
            },
            "code": codeable_concept(concept, fallback_text=obs.value_text),
            "subject": patient_reference,
        }

        if category is not None:
            condition_dict["category"] = [codeable_concept(category)]

        if encounter_reference is not None:
            condition_dict["encounter"] = encounter_reference

        if recorder_reference is not None:
            condition_dict["recorder"] = recorder_reference

        if obs.obs_datetime:
            condition_dict["recordedDate"] = as_aware(obs.obs_datetime)

        if obs.value_text and obs.value_text != condition_dict["code"].get("text"):
            condition_dict["note"] = [{"text": obs.value_text}]

        return Condition(**condition_dict)


class ObservationMapper:
    """Maps physical examination observations to FHIR Observation resources."""

    @staticmethod
    def map(
        obs: ObservationRecord,
        patient_reference: Reference,
        encounter_reference: Optional[Reference],
        performer_reference: Optional[Reference],
        org: OrgContext
    ) -> Observation:
        if not _has_concept(obs.concept):
            raise MappingError("concept", obs.uuid)

        observation_id = resource_id(obs.uuid)
        obs_dict = {
            "resourceType": "Observation",
            "id": observation_id,
            "identifier": [identifier_for(org, "observation", observation_id)],
            "status": "final",
            "code": codeable_concept(obs.concept),
            "subject": patient_reference,
        }

        if encounter_reference is not None:
            obs_dict["encounter"] = encounter_reference

        if performer_reference is not None:
            obs_dict["performer"] = [performer_reference]

        if obs.obs_datetime:
            obs_dict["effectiveDateTime"] = as_aware(obs.obs_datetime)

        # Value
        if obs.value_numeric is not None:
            quantity = {"value": obs.value_numeric}
            if obs.units:
                quantity["unit"] = obs.units
            obs_dict["valueQuantity"] = quantity
        elif _has_concept(obs.value_concept):
            obs_dict["valueCodeableConcept"] = codeable_concept(obs.value_concept)
        elif obs.value_text:
            obs_dict["valueString"] = obs.value_text

        return Observation(**obs_dict)


class DiagnosticReportMapper:
    """Maps radiology and uploaded-document observations to FHIR DiagnosticReport."""

    @staticmethod
    def map(
        obs: ObservationRecord,
        patient_reference: Reference,
        encounter_reference: Optional[Reference],
        performer_reference: Optional[Reference],
        org: OrgContext
    ) -> DiagnosticReport:
        """
        Convert a diagnostic observation to a FHIR DiagnosticReport.

        Args:
            obs: Observation with a report concept and an optional document
            patient_reference: Reference to the Patient resource
            encounter_reference: Reference to the Encounter resource
            performer_reference: Reference to the reporting Practitioner
            org: Org context for identifier systems

        Returns:
            FHIR DiagnosticReport resource

        Raises:
            MappingError: If the report concept is missing
        """
        if not _has_concept(obs.concept):
            raise MappingError("concept", obs.uuid)

        report_id = resource_id(obs.uuid)
        report_dict = {
            "resourceType": "DiagnosticReport",
            "id": report_id,
            "identifier": [identifier_for(org, "diagnostic-report", report_id)],
            "status": "final",
            "code": codeable_concept(obs.concept),
            "subject": patient_reference,
        }

        if encounter_reference is not None:
            report_dict["encounter"] = encounter_reference

        if performer_reference is not None:
            report_dict["performer"] = [performer_reference]

        if obs.obs_datetime:
            report_dict["effectiveDateTime"] = as_aware(obs.obs_datetime)

        if obs.value_text:
            report_dict["conclusion"] = obs.value_text
        elif _has_concept(obs.value_concept):
            report_dict["conclusionCode"] = [codeable_concept(obs.value_concept)]

        if obs.document_url:
            report_dict["presentedForm"] = [{
                "contentType": obs.content_type or "application/octet-stream",
                "url": obs.document_url,
                "title": obs.concept.display or None
            }]

        return DiagnosticReport(**report_dict)
