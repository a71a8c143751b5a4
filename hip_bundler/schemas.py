from enum import IntEnum
from pydantic import BaseModel, Field
from typing import Dict, List, Optional

# Health check schema
class HealthResponse(BaseModel):
    """Health check response"""
    status: str


# ============================================================================
# Client errors (HTTP 400 bodies)
# ============================================================================

class ErrorCode(IntEnum):
    PATIENT_ID_NOT_PROVIDED = 1000
    VISIT_TYPE_NOT_PROVIDED = 1001
    INVALID_PATIENT_ID = 1002
    INVALID_VISIT_TYPE = 1003
    INVALID_DATE = 1004


class ErrorDetail(BaseModel):
    code: int
    message: str


class ClientError(BaseModel):
    """Error body returned for invalid request parameters"""
    error: ErrorDetail

    @classmethod
    def of(cls, code: ErrorCode, message: str) -> "ClientError":
        return cls(error=ErrorDetail(code=int(code), message=message))

    @classmethod
    def no_patient_id_provided(cls) -> "ClientError":
        return cls.of(ErrorCode.PATIENT_ID_NOT_PROVIDED, "No patient id provided")

    @classmethod
    def no_visit_type_provided(cls) -> "ClientError":
        return cls.of(ErrorCode.VISIT_TYPE_NOT_PROVIDED, "No visit type provided")

    @classmethod
    def invalid_patient_id(cls) -> "ClientError":
        return cls.of(ErrorCode.INVALID_PATIENT_ID, "Patient id is invalid")

    @classmethod
    def invalid_visit_type(cls) -> "ClientError":
        return cls.of(ErrorCode.INVALID_VISIT_TYPE, "Visit type is invalid")

    @classmethod
    def invalid_date(cls, value: str) -> "ClientError":
        return cls.of(ErrorCode.INVALID_DATE, f"Invalid date '{value}', expected YYYY-MM-DD")


# ============================================================================
# Document export schemas
# ============================================================================

class CareContextEntry(BaseModel):
    """Care context a document is linked under"""
    reference: str = Field(..., description="Encounter uuid")
    care_context_type: str = Field(..., description="Care-context type of the facility, e.g. Visit")
    display: Optional[str] = Field(None, description="Visit type of the encounter")


class DocumentEntry(BaseModel):
    """One encounter's FHIR document"""
    encounter_uuid: str = Field(..., description="Encounter the document was built from")
    document_id: str = Field(..., description="Deterministic document id, e.g. PR-42")
    care_context: CareContextEntry
    bundle: Dict = Field(..., description="FHIR document Bundle")


class DocumentFailure(BaseModel):
    """An encounter whose document could not be built"""
    encounter_uuid: str
    error: str


class DocumentListResponse(BaseModel):
    """Documents of one request, one per encounter"""
    documents: List[DocumentEntry] = Field(default_factory=list)
    errors: List[DocumentFailure] = Field(default_factory=list)
    error: Optional[str] = Field(None, description="Request-level failure message")
