"""
Document export service.

Top-level pipeline of one request:
1. Fetch domain records from the record source
2. Group them by encounter
3. Assemble one document Bundle per encounter
4. Report each encounter's outcome

Encounters are independent: a failing encounter is reported in its
DocumentResult and never prevents its siblings from being built.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from fhir.resources.R4B.bundle import Bundle
from pydantic import ValidationError

from ..fhir.assembler import DocumentAssembler
from ..fhir.categories import (
    DiagnosticReportCategory,
    DocumentCategory,
    OPConsultCategory,
    PrescriptionCategory,
)
from ..fhir.context import OrgContext
from ..fhir.errors import BundleAssemblyError
from ..fhir.grouping import group_by_encounter
from ..fhir.records import DomainRecord, EncounterRecord
from .record_source import RecordSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CareContext:
    """
    The care context a document is linked under when shared.

    Attributes:
        reference: Encounter uuid the document belongs to
        care_context_type: Care-context type of the organization (e.g. "Visit")
        display: Visit type, or encounter type when the visit type is unknown
    """
    reference: str
    care_context_type: str
    display: Optional[str] = None


def care_context_for(encounter: EncounterRecord, care_context_type: str) -> CareContext:
    return CareContext(
        reference=encounter.uuid,
        care_context_type=care_context_type,
        display=encounter.visit_type or encounter.encounter_type
    )


@dataclass
class DocumentResult:
    """Outcome of building one encounter's document."""
    encounter_uuid: str
    success: bool
    care_context: Optional[CareContext] = None
    document_id: Optional[str] = None
    bundle: Optional[Bundle] = None
    error: Optional[str] = None


class DocumentService:
    """
    Builds FHIR documents for a patient's records.

    Usage:
        service = DocumentService(org)
        results = service.build_documents(drug_orders, PrescriptionCategory())

        bundles = [r.bundle for r in results if r.success]
    """

    def __init__(self, org: OrgContext, workers: int = 1):
        self.org = org
        self.workers = max(1, workers)

    def build_documents(
        self,
        records: Iterable[DomainRecord],
        category: DocumentCategory
    ) -> List[DocumentResult]:
        """
        Build one document per encounter found in ``records``.

        Args:
            records: Domain records in source order
            category: Document category deciding type and sections

        Returns:
            One DocumentResult per encounter, in first-seen encounter order;
            empty when there are no records
        """
        groups = group_by_encounter(records)
        if not groups:
            return []

        assembler = DocumentAssembler(category, self.org)
        items = list(groups.items())

        # The org context is frozen and every build owns its bundler,
        # so encounters can be assembled concurrently
        if self.workers > 1 and len(items) > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                results = list(pool.map(lambda item: self._build_one(assembler, *item), items))
        else:
            results = [self._build_one(assembler, *item) for item in items]

        failed = sum(1 for result in results if not result.success)
        logger.info(
            "Built %d %s document(s), %d failed",
            len(results) - failed, category.name, failed
        )
        return results

    def _build_one(self, assembler: DocumentAssembler, encounter_uuid: str, records) -> DocumentResult:
        # Grouping guarantees every record of the group carries the encounter
        care_context = care_context_for(records[0].encounter, self.org.care_context_type)
        try:
            bundle = assembler.assemble(records)
        except (BundleAssemblyError, ValidationError) as e:
            logger.error("Document for encounter %s aborted: %s", encounter_uuid, e)
            return DocumentResult(
                encounter_uuid=encounter_uuid,
                success=False,
                care_context=care_context,
                error=str(e)
            )

        return DocumentResult(
            encounter_uuid=encounter_uuid,
            success=True,
            care_context=care_context,
            document_id=bundle.id,
            bundle=bundle
        )

    # ------------------------------------------------------------------
    # Request operations
    # ------------------------------------------------------------------

    def prescriptions(
        self,
        source: RecordSource,
        patient_uuid: str,
        from_date: datetime,
        to_date: datetime
    ) -> List[DocumentResult]:
        """Prescription documents for drug orders activated in the date range."""
        orders = source.drug_orders_for(patient_uuid, from_date, to_date)
        return self.build_documents(orders, PrescriptionCategory())

    def op_consults(
        self,
        source: RecordSource,
        patient_uuid: str,
        visit_type: str,
        from_date: datetime,
        to_date: datetime
    ) -> List[DocumentResult]:
        """Consultation documents for a patient's visits of the given type."""
        observations = source.consultation_observations_for(patient_uuid, visit_type, from_date, to_date)
        return self.build_documents(observations, OPConsultCategory())

    def diagnostic_reports(
        self,
        source: RecordSource,
        patient_uuid: str,
        visit_type: str,
        from_date: datetime,
        to_date: datetime
    ) -> List[DocumentResult]:
        """Diagnostic report documents for a patient's visits of the given type."""
        observations = source.diagnostic_observations_for(patient_uuid, visit_type, from_date, to_date)
        return self.build_documents(observations, DiagnosticReportCategory())
