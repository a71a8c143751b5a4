"""
EMR record source.

Reads drug orders and observations for a patient from the EMR store and
returns them as immutable domain records, in EMR order. All database
access of a request happens here, before document assembly starts.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import models
from ..fhir.records import (
    CHIEF_COMPLAINT,
    DIAGNOSTIC,
    MEDICAL_HISTORY,
    PHYSICAL_EXAMINATION,
    ConceptRecord,
    DrugOrderRecord,
    DrugRecord,
    EncounterRecord,
    ObservationRecord,
    PatientRecord,
    ProviderRecord,
)

logger = logging.getLogger(__name__)

CONSULTATION_CATEGORIES = (CHIEF_COMPLAINT, MEDICAL_HISTORY, PHYSICAL_EXAMINATION)
DIAGNOSTIC_ENCOUNTER_TYPES = ("RADIOLOGY", "Patient Document")


class RecordSource:
    """
    Query adapter over the EMR tables.

    Encounter records are built once per encounter and shared by all of
    that encounter's domain records.
    """

    def __init__(self, db: Session):
        self.db = db
        self._encounters: Dict[int, EncounterRecord] = {}

    def drug_orders_for(
        self,
        patient_uuid: str,
        from_date: datetime,
        to_date: datetime
    ) -> List[DrugOrderRecord]:
        """Non-voided drug orders activated in [from_date, to_date]."""
        rows = (
            self.db.query(models.DrugOrder)
            .join(models.Patient, models.DrugOrder.patient_id == models.Patient.id)
            .filter(
                models.Patient.uuid == patient_uuid,
                models.DrugOrder.voided.is_(False),
                models.DrugOrder.date_activated >= from_date,
                models.DrugOrder.date_activated <= to_date,
            )
            .order_by(models.DrugOrder.date_activated, models.DrugOrder.id)
            .all()
        )
        logger.info("Fetched %d drug orders for patient %s", len(rows), patient_uuid)
        return [self._drug_order_record(row) for row in rows]

    def consultation_observations_for(
        self,
        patient_uuid: str,
        visit_type: str,
        from_date: datetime,
        to_date: datetime
    ) -> List[ObservationRecord]:
        """Chief complaints, medical history and physical examination observations."""
        rows = (
            self._observations_query(patient_uuid, visit_type, from_date, to_date)
            .filter(models.Obs.category.in_(CONSULTATION_CATEGORIES))
            .all()
        )
        logger.info("Fetched %d consultation observations for patient %s", len(rows), patient_uuid)
        return [self._observation_record(row) for row in rows]

    def diagnostic_observations_for(
        self,
        patient_uuid: str,
        visit_type: str,
        from_date: datetime,
        to_date: datetime
    ) -> List[ObservationRecord]:
        """Diagnostic observations from radiology and patient document encounters."""
        rows = (
            self._observations_query(patient_uuid, visit_type, from_date, to_date)
            .join(models.EncounterType, models.Encounter.encounter_type_id == models.EncounterType.id)
            .filter(
                models.Obs.category == DIAGNOSTIC,
                models.EncounterType.name.in_(DIAGNOSTIC_ENCOUNTER_TYPES),
            )
            .all()
        )
        logger.info("Fetched %d diagnostic observations for patient %s", len(rows), patient_uuid)
        return [self._observation_record(row) for row in rows]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _observations_query(self, patient_uuid, visit_type, from_date, to_date):
        return (
            self.db.query(models.Obs)
            .join(models.Patient, models.Obs.person_id == models.Patient.id)
            .join(models.Encounter, models.Obs.encounter_id == models.Encounter.id)
            .join(models.VisitType, models.Encounter.visit_type_id == models.VisitType.id)
            .filter(
                models.Patient.uuid == patient_uuid,
                func.lower(models.VisitType.name) == visit_type.lower(),
                models.Obs.voided.is_(False),
                models.Encounter.voided.is_(False),
                models.Encounter.encounter_datetime >= from_date,
                models.Encounter.encounter_datetime <= to_date,
            )
            .order_by(models.Encounter.encounter_datetime, models.Obs.obs_datetime, models.Obs.id)
        )

    @staticmethod
    def _concept_record(concept: Optional[models.Concept]) -> Optional[ConceptRecord]:
        if concept is None:
            return None
        return ConceptRecord(display=concept.name, code=concept.code)

    def _encounter_record(self, encounter: Optional[models.Encounter]) -> Optional[EncounterRecord]:
        if encounter is None:
            return None
        if encounter.id in self._encounters:
            return self._encounters[encounter.id]

        patient = encounter.patient
        record = EncounterRecord(
            uuid=encounter.uuid,
            encounter_datetime=encounter.encounter_datetime,
            patient=PatientRecord(
                uuid=patient.uuid,
                name=patient.name,
                gender=patient.gender,
                birth_date=patient.birthdate
            ) if patient else None,
            encounter_id=encounter.id,
            providers=tuple(
                ProviderRecord(uuid=ep.provider.uuid, name=ep.provider.name)
                for ep in encounter.encounter_providers
                if ep.provider is not None
            ),
            visit_type=encounter.visit_type.name if encounter.visit_type else None,
            encounter_type=encounter.encounter_type.name if encounter.encounter_type else None
        )
        self._encounters[encounter.id] = record
        return record

    def _drug_order_record(self, row: models.DrugOrder) -> DrugOrderRecord:
        drug = None
        if row.drug is not None:
            drug = DrugRecord(
                uuid=row.drug.uuid,
                name=row.drug.name,
                concept=self._concept_record(row.drug.concept),
                strength=row.drug.strength,
                dosage_form=row.drug.dosage_form
            )

        return DrugOrderRecord(
            uuid=row.uuid,
            encounter=self._encounter_record(row.encounter),
            drug=drug,
            drug_non_coded=row.drug_non_coded,
            dosing_instructions=row.dosing_instructions,
            dose=row.dose,
            dose_units=row.dose_units,
            route=row.route,
            frequency=row.frequency,
            duration=row.duration,
            duration_units=row.duration_units,
            quantity=row.quantity,
            quantity_units=row.quantity_units,
            as_needed=bool(row.as_needed),
            date_activated=row.date_activated
        )

    def _observation_record(self, row: models.Obs) -> ObservationRecord:
        return ObservationRecord(
            uuid=row.uuid,
            encounter=self._encounter_record(row.encounter),
            category=row.category,
            concept=self._concept_record(row.concept),
            value_text=row.value_text,
            value_numeric=row.value_numeric,
            units=row.units,
            value_concept=self._concept_record(row.value_coded),
            obs_datetime=row.obs_datetime,
            document_url=row.document_url,
            content_type=row.content_type
        )
