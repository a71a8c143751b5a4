"""
ORM models of the EMR record store.

A reduced view of the OpenMRS tables the HIP reads from. This service only
queries them; generated bundles are never written back.
"""
from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from .database import Base


class Patient(Base):
    __tablename__ = "patient"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(38), unique=True, nullable=False, index=True)
    name = Column(String(255))
    gender = Column(String(1))  # 'M', 'F', 'O'
    birthdate = Column(Date)
    voided = Column(Boolean, default=False)

    encounters = relationship("Encounter", back_populates="patient")


class Provider(Base):
    __tablename__ = "provider"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(38), unique=True, nullable=False)
    name = Column(String(255))


class VisitType(Base):
    __tablename__ = "visit_type"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, nullable=False)  # 'OPD', 'IPD', ...


class EncounterType(Base):
    __tablename__ = "encounter_type"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, nullable=False)  # 'Consultation', 'RADIOLOGY', 'Patient Document'


class Encounter(Base):
    __tablename__ = "encounter"

    id = Column(Integer, primary_key=True, index=True)  # encounter_id, used in document ids
    uuid = Column(String(38), unique=True, nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("patient.id"), nullable=False, index=True)
    encounter_type_id = Column(Integer, ForeignKey("encounter_type.id"))
    visit_type_id = Column(Integer, ForeignKey("visit_type.id"))
    encounter_datetime = Column(DateTime, nullable=False)
    voided = Column(Boolean, default=False)

    patient = relationship("Patient", back_populates="encounters")
    encounter_type = relationship("EncounterType")
    visit_type = relationship("VisitType")
    encounter_providers = relationship(
        "EncounterProvider",
        back_populates="encounter",
        order_by="EncounterProvider.id"
    )


class EncounterProvider(Base):
    __tablename__ = "encounter_provider"

    id = Column(Integer, primary_key=True, index=True)
    encounter_id = Column(Integer, ForeignKey("encounter.id"), nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("provider.id"), nullable=False)

    encounter = relationship("Encounter", back_populates="encounter_providers")
    provider = relationship("Provider")


class Concept(Base):
    __tablename__ = "concept"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(38), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    code = Column(String(50))  # SNOMED CT code when mapped


class Drug(Base):
    __tablename__ = "drug"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(38), unique=True, nullable=False)
    name = Column(String(255))
    concept_id = Column(Integer, ForeignKey("concept.id"))  # NULL when the drug is not coded
    strength = Column(String(255))
    dosage_form = Column(String(255))

    concept = relationship("Concept")


class DrugOrder(Base):
    __tablename__ = "drug_order"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(38), unique=True, nullable=False)
    encounter_id = Column(Integer, ForeignKey("encounter.id"), index=True)
    patient_id = Column(Integer, ForeignKey("patient.id"), nullable=False, index=True)
    drug_id = Column(Integer, ForeignKey("drug.id"))
    drug_non_coded = Column(String(255))
    dosing_instructions = Column(Text)
    dose = Column(Float)
    dose_units = Column(String(50))
    route = Column(String(50))
    frequency = Column(String(100))
    duration = Column(Integer)
    duration_units = Column(String(50))
    quantity = Column(Float)
    quantity_units = Column(String(50))
    as_needed = Column(Boolean, default=False)
    date_activated = Column(DateTime, nullable=False)
    voided = Column(Boolean, default=False)

    encounter = relationship("Encounter")
    drug = relationship("Drug")


class Obs(Base):
    __tablename__ = "obs"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(38), unique=True, nullable=False)
    encounter_id = Column(Integer, ForeignKey("encounter.id"), index=True)
    person_id = Column(Integer, ForeignKey("patient.id"), nullable=False, index=True)
    category = Column(String(50), nullable=False)  # chief_complaint, medical_history, physical_examination, diagnostic
    concept_id = Column(Integer, ForeignKey("concept.id"))
    value_coded_id = Column(Integer, ForeignKey("concept.id"))
    value_text = Column(Text)
    value_numeric = Column(Float)
    units = Column(String(50))
    document_url = Column(String(1024))
    content_type = Column(String(100))
    obs_datetime = Column(DateTime, nullable=False)
    voided = Column(Boolean, default=False)

    encounter = relationship("Encounter")
    concept = relationship("Concept", foreign_keys=[concept_id])
    value_coded = relationship("Concept", foreign_keys=[value_coded_id])
