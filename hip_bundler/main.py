from fastapi import FastAPI, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional
import logging
from . import schemas, database
from .config import Settings, get_settings, settings
from .fhir import OrgContext, MissingContextError, bundle_to_dict, resolve_org_context
from .logging_config import setup_logging
from .services import DocumentResult, DocumentService, RecordSource, ValidationService

from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

HIP_PREFIX = "/rest/v1/hip"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging on startup"""
    setup_logging(use_json=settings.log_json, log_level=settings.log_level)
    logger.info("%s started", settings.app_name)
    yield

# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="FHIR document export for a Health Information Provider",
    version="1.0.0",
    lifespan=lifespan
)


@app.exception_handler(MissingContextError)
async def missing_context_handler(request: Request, exc: MissingContextError):
    """Org configuration problems fail the whole request"""
    logger.error("Request %s failed: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"documents": [], "errors": [], "error": str(exc)})


# ============================================================================
# Dependencies
# ============================================================================

def get_org_context(settings: Settings = Depends(get_settings)) -> OrgContext:
    """Resolve the org context once per request"""
    return resolve_org_context(settings)


def get_document_service(
    org: OrgContext = Depends(get_org_context),
    settings: Settings = Depends(get_settings)
) -> DocumentService:
    return DocumentService(org, workers=settings.assembly_workers)


def _bad_request(error: schemas.ClientError) -> JSONResponse:
    return JSONResponse(status_code=400, content=error.model_dump())


def _parse_date(value: str) -> date:
    return date.fromisoformat(value)


def _document_list(results: List[DocumentResult]) -> schemas.DocumentListResponse:
    return schemas.DocumentListResponse(
        documents=[
            schemas.DocumentEntry(
                encounter_uuid=result.encounter_uuid,
                document_id=result.document_id,
                care_context=schemas.CareContextEntry(
                    reference=result.care_context.reference,
                    care_context_type=result.care_context.care_context_type,
                    display=result.care_context.display
                ),
                bundle=bundle_to_dict(result.bundle)
            )
            for result in results if result.success
        ],
        errors=[
            schemas.DocumentFailure(encounter_uuid=result.encounter_uuid, error=result.error)
            for result in results if not result.success
        ]
    )


def _validate_visit_request(
    db: Session,
    patient_id: Optional[str],
    visit_type: Optional[str],
    from_date: Optional[str],
    to_date: Optional[str]
):
    """
    Validate visit query parameters.

    Returns:
        (error response or None, from datetime, to datetime)
    """
    if not patient_id:
        return _bad_request(schemas.ClientError.no_patient_id_provided()), None, None
    if not visit_type:
        return _bad_request(schemas.ClientError.no_visit_type_provided()), None, None

    validation = ValidationService(db)
    if not validation.is_valid_visit_type(visit_type):
        return _bad_request(schemas.ClientError.invalid_visit_type()), None, None
    if not validation.is_valid_patient(patient_id):
        return _bad_request(schemas.ClientError.invalid_patient_id()), None, None

    parsed = []
    for value in (from_date, to_date):
        try:
            parsed.append(_parse_date(value or ""))
        except ValueError:
            return _bad_request(schemas.ClientError.invalid_date(value or "")), None, None

    # Whole days, inclusive
    return None, datetime.combine(parsed[0], time.min), datetime.combine(parsed[1], time.max)


# ============================================================================
# ENDPOINTS
# ============================================================================

@app.get("/health", response_model=schemas.HealthResponse)
def health_check():
    """
    Health check endpoint - returns {"status": "ok"}
    """
    return {"status": "ok"}


@app.get(f"{HIP_PREFIX}/prescriptions", response_model=schemas.DocumentListResponse)
def get_prescriptions(
    patient_id: Optional[str] = Query(None, alias="patientId"),
    db: Session = Depends(database.get_db),
    settings: Settings = Depends(get_settings),
    service: DocumentService = Depends(get_document_service)
):
    """
    Prescription documents of the last ``prescription_lookback_days`` days

    Returns one FHIR document Bundle per encounter with drug orders.
    """
    if not patient_id:
        return _bad_request(schemas.ClientError.no_patient_id_provided())
    if not ValidationService(db).is_valid_patient(patient_id):
        return _bad_request(schemas.ClientError.invalid_patient_id())

    # EMR timestamps are naive UTC
    to_date = datetime.now(timezone.utc).replace(tzinfo=None)
    from_date = to_date - timedelta(days=settings.prescription_lookback_days)

    results = service.prescriptions(RecordSource(db), patient_id, from_date, to_date)
    return _document_list(results)


@app.get(f"{HIP_PREFIX}/opConsult/visit", response_model=schemas.DocumentListResponse)
def get_op_consults(
    patient_id: Optional[str] = Query(None, alias="patientId"),
    visit_type: Optional[str] = Query(None, alias="visitType"),
    from_date: Optional[str] = Query(None, alias="fromDate"),
    to_date: Optional[str] = Query(None, alias="toDate"),
    db: Session = Depends(database.get_db),
    service: DocumentService = Depends(get_document_service)
):
    """
    Consultation documents for a patient's visits of one type

    Accepts:
    - patientId: Patient uuid
    - visitType: Visit type name (case-insensitive)
    - fromDate / toDate: YYYY-MM-DD, inclusive
    """
    error, start, end = _validate_visit_request(db, patient_id, visit_type, from_date, to_date)
    if error is not None:
        return error

    results = service.op_consults(RecordSource(db), patient_id, visit_type, start, end)
    return _document_list(results)


@app.get(f"{HIP_PREFIX}/diagnosticReports/visit", response_model=schemas.DocumentListResponse)
def get_diagnostic_reports(
    patient_id: Optional[str] = Query(None, alias="patientId"),
    visit_type: Optional[str] = Query(None, alias="visitType"),
    from_date: Optional[str] = Query(None, alias="fromDate"),
    to_date: Optional[str] = Query(None, alias="toDate"),
    db: Session = Depends(database.get_db),
    service: DocumentService = Depends(get_document_service)
):
    """
    Diagnostic report documents (radiology, uploaded documents) for a patient's visits
    """
    error, start, end = _validate_visit_request(db, patient_id, visit_type, from_date, to_date)
    if error is not None:
        return error

    results = service.diagnostic_reports(RecordSource(db), patient_id, visit_type, start, end)
    return _document_list(results)
