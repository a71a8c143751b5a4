"""
Document categories.

Every exchanged document is built the same way (patient, practitioners,
encounter, composition, bundle); what differs per category is the
document type, its title and how the encounter's records become sections.
Each category is a strategy plugged into the DocumentAssembler.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from fhir.resources.R4B.reference import Reference
from fhir.resources.R4B.resource import Resource

from .context import OrgContext
from .errors import MappingError
from .mappers import (
    ConditionMapper,
    DiagnosticReportMapper,
    MedicationMapper,
    ObservationMapper,
)
from .records import (
    CHIEF_COMPLAINT,
    DIAGNOSTIC,
    MEDICAL_HISTORY,
    PHYSICAL_EXAMINATION,
    ConceptRecord,
    DomainRecord,
)

logger = logging.getLogger(__name__)

CONDITION_CATEGORY_SYSTEM = "http://terminology.hl7.org/CodeSystem/condition-category"

PRESCRIPTION_TYPE = ConceptRecord(code="440545006", display="Prescription record")
OP_CONSULT_TYPE = ConceptRecord(code="371530004", display="Clinical consultation report")
DIAGNOSTIC_REPORT_TYPE = ConceptRecord(code="721981007", display="Diagnostic studies report")
CHIEF_COMPLAINT_SECTION = ConceptRecord(code="422843007", display="Chief complaint section")
MEDICAL_HISTORY_SECTION = ConceptRecord(code="371529009", display="History and physical report")
PHYSICAL_EXAMINATION_SECTION = ConceptRecord(code="425044008", display="Physical exam section")

PROBLEM_LIST_ITEM = ConceptRecord(
    code="problem-list-item",
    display="Problem List Item",
    system=CONDITION_CATEGORY_SYSTEM
)


@dataclass(frozen=True)
class AssemblyScope:
    """References shared by every section resource of one document."""
    org: OrgContext
    patient_reference: Reference
    encounter_reference: Reference
    author_reference: Optional[Reference] = None


@dataclass
class SectionContent:
    """
    One composition section before it is rendered.

    Attributes:
        title: Section title
        code: Section type concept
        entries: Resources the section lists, in record order
        supporting: Resources the entries reference (e.g. medications)
    """
    title: str
    code: ConceptRecord
    entries: List[Resource] = field(default_factory=list)
    supporting: List[Resource] = field(default_factory=list)


class DocumentCategory(ABC):
    """
    Base class for a document category.

    Subclasses set the class attributes and turn one encounter's records
    into ordered sections.
    """

    name: str
    title: str
    type_concept: ConceptRecord
    id_prefix: str

    @abstractmethod
    def build_sections(self, records: List[DomainRecord], scope: AssemblyScope) -> List[SectionContent]:
        """
        Map an encounter's records into sections.

        Records that fail to map are skipped; they never abort the document.
        """
        pass

    def _skip(self, record: DomainRecord, reason) -> None:
        logger.warning(
            "Skipping %s record %s in encounter %s: %s",
            self.name, record.source_id, record.encounter_uuid, reason
        )


class PrescriptionCategory(DocumentCategory):
    """OPD prescriptions: one MedicationRequest per resolvable drug order."""

    name = "prescription"
    title = "Prescription"
    type_concept = PRESCRIPTION_TYPE
    id_prefix = "PR"

    def build_sections(self, records, scope):
        section = SectionContent(title="OPD Prescription", code=PRESCRIPTION_TYPE)

        for order in records:
            try:
                pair = MedicationMapper.map_pair(
                    order,
                    scope.patient_reference,
                    scope.author_reference,
                    scope.org
                )
            except MappingError as e:
                self._skip(order, e)
                continue

            if pair is None:
                self._skip(order, "no resolvable medication concept")
                continue

            medication, request = pair
            section.supporting.append(medication)
            section.entries.append(request)

        return [section]


class OPConsultCategory(DocumentCategory):
    """Outpatient consultation: complaints, history and examination findings."""

    name = "op_consult"
    title = "Consultation Report"
    type_concept = OP_CONSULT_TYPE
    id_prefix = "OP"

    def build_sections(self, records, scope):
        chief_complaints = SectionContent(title="Chief complaints", code=CHIEF_COMPLAINT_SECTION)
        medical_history = SectionContent(title="Medical history", code=MEDICAL_HISTORY_SECTION)
        physical_examination = SectionContent(
            title="Physical examination",
            code=PHYSICAL_EXAMINATION_SECTION
        )

        for obs in records:
            try:
                if obs.category == CHIEF_COMPLAINT:
                    chief_complaints.entries.append(ConditionMapper.map(
                        obs,
                        scope.patient_reference,
                        scope.encounter_reference,
                        scope.author_reference,
                        scope.org
                    ))
                elif obs.category == MEDICAL_HISTORY:
                    medical_history.entries.append(ConditionMapper.map(
                        obs,
                        scope.patient_reference,
                        scope.encounter_reference,
                        scope.author_reference,
                        scope.org,
                        category=PROBLEM_LIST_ITEM
                    ))
                elif obs.category == PHYSICAL_EXAMINATION:
                    physical_examination.entries.append(ObservationMapper.map(
                        obs,
                        scope.patient_reference,
                        scope.encounter_reference,
                        scope.author_reference,
                        scope.org
                    ))
                else:
                    self._skip(obs, f"unsupported observation category '{obs.category}'")
            except MappingError as e:
                self._skip(obs, e)

        return [chief_complaints, medical_history, physical_examination]


class DiagnosticReportCategory(DocumentCategory):
    """Radiology results and uploaded patient documents."""

    name = "diagnostic_report"
    title = "Diagnostic Report"
    type_concept = DIAGNOSTIC_REPORT_TYPE
    id_prefix = "DR"

    def build_sections(self, records, scope):
        section = SectionContent(title="Diagnostic Report", code=DIAGNOSTIC_REPORT_TYPE)

        for obs in records:
            if obs.category != DIAGNOSTIC:
                self._skip(obs, f"unsupported observation category '{obs.category}'")
                continue
            try:
                section.entries.append(DiagnosticReportMapper.map(
                    obs,
                    scope.patient_reference,
                    scope.encounter_reference,
                    scope.author_reference,
                    scope.org
                ))
            except MappingError as e:
                self._skip(obs, e)

        return [section]


CATEGORIES: Dict[str, DocumentCategory] = {
    category.name: category
    for category in (PrescriptionCategory(), OPConsultCategory(), DiagnosticReportCategory())
}
