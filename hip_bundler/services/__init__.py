from .document_service import CareContext, DocumentResult, DocumentService, care_context_for
from .record_source import RecordSource
from .validation import ValidationService

__all__ = [
    "CareContext",
    "DocumentResult",
    "DocumentService",
    "RecordSource",
    "ValidationService",
    "care_context_for",
]
