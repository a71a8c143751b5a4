"""
FHIR Document Assembly Module

Converts EMR records (drug orders, consultation and diagnostic
observations) into FHIR R4B document Bundles, one per encounter, using
the fhir.resources library.

Components:
- mappers: Individual resource mappers (Patient, MedicationRequest, etc.)
- grouping: Encounter grouper
- categories: Per-document-category section strategies
- assembler: Composition + document assembly for one encounter
- bundler: Deduplicating document Bundle builder
- context: Organization context and identifier systems
"""
from .assembler import DocumentAssembler
from .bundler import DocumentBundler, bundle_to_dict, dangling_references
from .categories import (
    CATEGORIES,
    DiagnosticReportCategory,
    DocumentCategory,
    OPConsultCategory,
    PrescriptionCategory,
)
from .context import OrgContext, resolve_org_context
from .errors import (
    BundleAssemblyError,
    GroupingError,
    MappingError,
    MissingContextError,
    ReferenceIntegrityError,
)
from .grouping import group_by_encounter

__all__ = [
    "DocumentAssembler",
    "DocumentBundler",
    "bundle_to_dict",
    "dangling_references",
    "CATEGORIES",
    "DocumentCategory",
    "PrescriptionCategory",
    "OPConsultCategory",
    "DiagnosticReportCategory",
    "OrgContext",
    "resolve_org_context",
    "BundleAssemblyError",
    "GroupingError",
    "MappingError",
    "MissingContextError",
    "ReferenceIntegrityError",
    "group_by_encounter",
]
