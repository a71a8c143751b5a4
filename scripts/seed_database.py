#!/usr/bin/env python3
"""
Database seeding script for a demo EMR store

Creates the EMR tables and loads one demo patient with an OPD
consultation encounter (drug orders, complaints, history, examination)
and a radiology encounter, so every export endpoint returns a document.

Usage:
    python scripts/seed_database.py
"""
import sys
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

# Add parent directory to path to import hip_bundler modules
sys.path.append(str(Path(__file__).parent.parent))

from hip_bundler.database import SessionLocal, engine
from hip_bundler import models

# Create all tables
models.Base.metadata.create_all(bind=engine)

DEMO_PATIENT_UUID = "7b4c9a1e-2f61-4d0f-9a55-0c1b2f3e4d5a"


def seed_demo_records():
    """Load the demo patient and its encounters into the database"""
    db = SessionLocal()

    existing = db.query(models.Patient).filter(models.Patient.uuid == DEMO_PATIENT_UUID).first()
    if existing:
        print(f"⊘ Skipped (exists): demo patient {DEMO_PATIENT_UUID}")
        db.close()
        return

    now = datetime.now(timezone.utc).replace(tzinfo=None)

    opd = models.VisitType(name="OPD")
    consultation = models.EncounterType(name="Consultation")
    radiology = models.EncounterType(name="RADIOLOGY")
    db.add_all([opd, consultation, radiology, models.EncounterType(name="Patient Document")])

    patient = models.Patient(
        uuid=DEMO_PATIENT_UUID,
        name="Asha Verma",
        gender="F",
        birthdate=date(1984, 3, 12)
    )
    doctor = models.Provider(uuid="c1d2e3f4-0000-4000-8000-000000000001", name="Dr. Rohan Mehta")
    nurse = models.Provider(uuid="c1d2e3f4-0000-4000-8000-000000000002", name="Nurse Priya Nair")
    db.add_all([patient, doctor, nurse])

    concepts = {
        "paracetamol": models.Concept(uuid="a0000000-0000-4000-8000-000000000001", name="Paracetamol", code="387517004"),
        "headache": models.Concept(uuid="a0000000-0000-4000-8000-000000000002", name="Headache", code="25064002"),
        "hypertension": models.Concept(uuid="a0000000-0000-4000-8000-000000000003", name="Hypertension", code="38341003"),
        "pulse": models.Concept(uuid="a0000000-0000-4000-8000-000000000004", name="Pulse rate", code="78564009"),
        "chest_xray": models.Concept(uuid="a0000000-0000-4000-8000-000000000005", name="Chest X-ray", code="399208008"),
    }
    db.add_all(concepts.values())
    db.flush()

    tablet = models.Drug(
        uuid="d0000000-0000-4000-8000-000000000001",
        name="Paracetamol 500 mg",
        concept_id=concepts["paracetamol"].id,
        strength="500 mg",
        dosage_form="Tablet"
    )
    db.add(tablet)

    opd_encounter = models.Encounter(
        uuid="e0000000-0000-4000-8000-000000000001",
        patient=patient,
        encounter_type=consultation,
        visit_type=opd,
        encounter_datetime=now - timedelta(days=3)
    )
    xray_encounter = models.Encounter(
        uuid="e0000000-0000-4000-8000-000000000002",
        patient=patient,
        encounter_type=radiology,
        visit_type=opd,
        encounter_datetime=now - timedelta(days=2)
    )
    db.add_all([opd_encounter, xray_encounter])
    db.flush()

    db.add_all([
        models.EncounterProvider(encounter_id=opd_encounter.id, provider_id=doctor.id),
        models.EncounterProvider(encounter_id=opd_encounter.id, provider_id=nurse.id),
        models.EncounterProvider(encounter_id=xray_encounter.id, provider_id=doctor.id),
    ])

    db.add_all([
        models.DrugOrder(
            uuid="f0000000-0000-4000-8000-000000000001",
            encounter_id=opd_encounter.id,
            patient_id=patient.id,
            drug=tablet,
            dosing_instructions="1 tablet after food",
            dose=1,
            dose_units="Tablet",
            route="Oral",
            frequency="Thrice a day",
            duration=5,
            duration_units="d",
            quantity=15,
            quantity_units="Tablet",
            date_activated=opd_encounter.encounter_datetime
        ),
        models.DrugOrder(
            uuid="f0000000-0000-4000-8000-000000000002",
            encounter_id=opd_encounter.id,
            patient_id=patient.id,
            drug_non_coded="Herbal cough syrup",
            dosing_instructions="10 ml at night",
            date_activated=opd_encounter.encounter_datetime
        ),
    ])

    obs_time = opd_encounter.encounter_datetime
    db.add_all([
        models.Obs(
            uuid="b0000000-0000-4000-8000-000000000001",
            encounter_id=opd_encounter.id,
            person_id=patient.id,
            category="chief_complaint",
            value_coded_id=concepts["headache"].id,
            value_text="Headache since 2 days",
            obs_datetime=obs_time
        ),
        models.Obs(
            uuid="b0000000-0000-4000-8000-000000000002",
            encounter_id=opd_encounter.id,
            person_id=patient.id,
            category="medical_history",
            concept_id=concepts["hypertension"].id,
            obs_datetime=obs_time
        ),
        models.Obs(
            uuid="b0000000-0000-4000-8000-000000000003",
            encounter_id=opd_encounter.id,
            person_id=patient.id,
            category="physical_examination",
            concept_id=concepts["pulse"].id,
            value_numeric=82,
            units="/min",
            obs_datetime=obs_time
        ),
        models.Obs(
            uuid="b0000000-0000-4000-8000-000000000004",
            encounter_id=xray_encounter.id,
            person_id=patient.id,
            category="diagnostic",
            concept_id=concepts["chest_xray"].id,
            value_text="No active lung lesion",
            document_url="https://hip.example.org/documents/chest-xray.pdf",
            content_type="application/pdf",
            obs_datetime=xray_encounter.encounter_datetime
        ),
    ])

    db.commit()
    db.close()

    print(f"\n✅ Database seeding complete!")
    print(f"   Patient: {DEMO_PATIENT_UUID}")
    print(f"   Encounters: 2 (OPD consultation, radiology)")


if __name__ == "__main__":
    print("📋 Seeding database with demo EMR records...\n")
    try:
        seed_demo_records()
    except Exception as e:
        print(f"\n❌ Error seeding database: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)
