"""
Document Assembler

Builds one FHIR document for one encounter:
1. Patient resource (composition subject)
2. Practitioner resources (composition authors)
3. Encounter resource
4. Section resources from the document category
5. Composition
6. Bundle assembly
"""
import logging
from typing import List, Optional

from fhir.resources.R4B.bundle import Bundle
from fhir.resources.R4B.composition import Composition
from fhir.resources.R4B.practitioner import Practitioner
from fhir.resources.R4B.reference import Reference

from .bundler import DocumentBundler
from .categories import AssemblyScope, DocumentCategory, SectionContent
from .context import OrgContext
from .errors import MappingError, MissingContextError
from .identity import document_id, generate_id, identifier_for, reference_to, resource_key
from .mappers import EncounterMapper, PatientMapper, PractitionerMapper, as_aware, codeable_concept
from .records import DomainRecord, EncounterRecord

logger = logging.getLogger(__name__)

LIST_EMPTY_REASON_SYSTEM = "http://terminology.hl7.org/CodeSystem/list-empty-reason"


class DocumentAssembler:
    """
    Assembles one encounter's records into a document Bundle.

    Usage:
        assembler = DocumentAssembler(PrescriptionCategory(), org)
        bundle = assembler.assemble(drug_orders_of_one_encounter)
    """

    def __init__(self, category: DocumentCategory, org: OrgContext):
        self.category = category
        self.org = org

    def assemble(self, records: List[DomainRecord]) -> Bundle:
        """
        Build the document for one encounter.

        Args:
            records: Non-empty records that all belong to the same encounter

        Returns:
            Document Bundle with the Composition as first entry

        Raises:
            ValueError: If records is empty or spans several encounters
            MissingContextError: If the patient or encounter cannot be resolved
        """
        if not records:
            raise ValueError("Cannot assemble a document from zero records")

        encounter = records[0].encounter
        if encounter is None:
            raise MissingContextError(f"Record {records[0].source_id} has no encounter")

        if any(record.encounter_uuid != encounter.uuid for record in records):
            raise ValueError(f"Records of encounter {encounter.uuid} mixed with other encounters")

        try:
            patient = PatientMapper.map(encounter.patient, self.org)
            patient_reference = reference_to(patient)
            fhir_encounter = EncounterMapper.map(encounter, patient_reference, self.org)
        except MappingError as e:
            raise MissingContextError(f"Encounter {encounter.uuid}: {e}") from e

        encounter_reference = reference_to(fhir_encounter)
        practitioners = self._practitioners_for(encounter)
        author_references = [reference_to(practitioner) for practitioner in practitioners]

        scope = AssemblyScope(
            org=self.org,
            patient_reference=patient_reference,
            encounter_reference=encounter_reference,
            author_reference=author_references[0] if author_references else None
        )
        sections = self.category.build_sections(records, scope)

        timestamp = as_aware(encounter.encounter_datetime)
        composition = self._create_composition(
            patient_reference,
            encounter_reference,
            author_references,
            sections,
            timestamp
        )

        # Entry order: composition, encounter, authors, subject, then sections
        bundler = DocumentBundler(self.org)
        bundler.add_resource(fhir_encounter)
        bundler.add_resources(practitioners)
        bundler.add_resource(patient)
        for section in sections:
            bundler.add_resources(section.supporting)
        for section in sections:
            bundler.add_resources(section.entries)

        doc_id = document_id(self.category.id_prefix, encounter)
        bundle = bundler.build(composition, doc_id, timestamp)

        logger.info(
            "Assembled %s document %s for encounter %s with %d entries",
            self.category.name, doc_id, encounter.uuid, len(bundle.entry)
        )
        return bundle

    def _practitioners_for(self, encounter: EncounterRecord) -> List[Practitioner]:
        """One Practitioner per distinct encounter provider, in EMR order."""
        practitioners = []
        seen = set()
        for provider in encounter.providers:
            try:
                practitioner = PractitionerMapper.map(provider, self.org)
            except MappingError as e:
                logger.warning("Skipping provider of encounter %s: %s", encounter.uuid, e)
                continue
            key = resource_key(practitioner)
            if key in seen:
                continue
            seen.add(key)
            practitioners.append(practitioner)
        return practitioners

    def _create_section(self, section: SectionContent) -> dict:
        section_dict = {
            "title": section.title,
            "code": codeable_concept(section.code),
        }
        if section.entries:
            section_dict["entry"] = [reference_to(resource) for resource in section.entries]
        else:
            # FHIR requires text, entries or sub-sections on every section
            section_dict["text"] = {
                "status": "generated",
                "div": f'<div xmlns="http://www.w3.org/1999/xhtml">{section.title}: nothing recorded</div>'
            }
            section_dict["emptyReason"] = {
                "coding": [{
                    "system": LIST_EMPTY_REASON_SYSTEM,
                    "code": "unavailable",
                    "display": "Unavailable"
                }]
            }
        return section_dict

    def _create_composition(
        self,
        patient_reference: Reference,
        encounter_reference: Reference,
        author_references: List[Reference],
        sections: List[SectionContent],
        timestamp
    ) -> Composition:
        """Create the root Composition; its date is the encounter time, not export time."""
        composition_id = generate_id()
        organization: Optional[Reference] = None
        if self.org.organization_id or self.org.name:
            organization = self.org.organization_reference()

        composition_dict = {
            "resourceType": "Composition",
            "id": composition_id,
            "identifier": identifier_for(self.org, "document", composition_id),
            "status": "final",
            "type": codeable_concept(self.category.type_concept),
            "subject": patient_reference,
            "encounter": encounter_reference,
            "date": timestamp,
            "title": self.category.title,
            "section": [self._create_section(section) for section in sections],
        }

        # FHIR requires at least one author; fall back to the organization
        if author_references:
            composition_dict["author"] = author_references
        elif organization is not None:
            composition_dict["author"] = [organization]
        else:
            raise MissingContextError("Composition has no author: no providers and no organization")

        if organization is not None:
            composition_dict["custodian"] = organization

        return Composition(**composition_dict)
