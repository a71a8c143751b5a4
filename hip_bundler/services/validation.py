from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import models


class ValidationService:
    """Request parameter checks against the EMR store"""

    def __init__(self, db: Session):
        self.db = db

    def is_valid_patient(self, patient_uuid: str) -> bool:
        """True if a non-voided patient with this uuid exists"""
        return self.db.query(models.Patient.id).filter(
            models.Patient.uuid == patient_uuid,
            models.Patient.voided.is_(False)
        ).first() is not None

    def is_valid_visit_type(self, visit_type: str) -> bool:
        """True if the visit type is configured (case-insensitive)"""
        return self.db.query(models.VisitType.id).filter(
            func.lower(models.VisitType.name) == visit_type.lower()
        ).first() is not None
