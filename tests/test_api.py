"""
HIP Export API Tests

Tests the HTTP endpoints against a seeded SQLite EMR store:
1. Health check
2. Prescription export (lookback window)
3. OP consultation and diagnostic report export by visit
4. Parameter validation (400) and org configuration failures (500)
"""
import pytest
from datetime import date, datetime, timedelta, timezone
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from hip_bundler import models
from hip_bundler.config import Settings, get_settings
from hip_bundler.database import Base, get_db
from hip_bundler.main import app

# Test database (SQLite in /tmp for container compatibility)
SQLALCHEMY_DATABASE_URL = "sqlite:////tmp/test_hip_api.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TEST_SETTINGS = Settings(
    database_url=SQLALCHEMY_DATABASE_URL,
    hfr_id="IN2910000001",
    hfr_name="Sunrise Clinic",
    hfr_url="https://hip.example.org"
)

PATIENT_UUID = "7b4c9a1e-2f61-4d0f-9a55-0c1b2f3e4d5a"
EMPTY_PATIENT_UUID = "0e6f1c2d-3b4a-4c5d-8e9f-a0b1c2d3e4f5"

NOW = datetime.now(timezone.utc).replace(tzinfo=None)
FROM_DATE = (NOW - timedelta(days=10)).date().isoformat()
TO_DATE = NOW.date().isoformat()


def override_get_db():
    """Override database dependency for testing"""
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


def override_get_settings():
    return TEST_SETTINGS


app.dependency_overrides[get_db] = override_get_db
app.dependency_overrides[get_settings] = override_get_settings
client = TestClient(app)


def _seed(db):
    opd = models.VisitType(name="OPD")
    consultation = models.EncounterType(name="Consultation")
    radiology = models.EncounterType(name="RADIOLOGY")
    patient = models.Patient(uuid=PATIENT_UUID, name="Asha Verma", gender="F", birthdate=date(1984, 3, 12))
    empty_patient = models.Patient(uuid=EMPTY_PATIENT_UUID, name="Ravi Kumar", gender="M")
    doctor = models.Provider(uuid="prov-0001", name="Dr. Rohan Mehta")
    paracetamol = models.Concept(uuid="concept-1", name="Paracetamol", code="387517004")
    headache = models.Concept(uuid="concept-2", name="Headache", code="25064002")
    pulse = models.Concept(uuid="concept-3", name="Pulse rate", code="78564009")
    chest_xray = models.Concept(uuid="concept-4", name="Chest X-ray", code="399208008")
    db.add_all([opd, consultation, radiology, patient, empty_patient, doctor,
                paracetamol, headache, pulse, chest_xray])
    db.flush()

    tablet = models.Drug(uuid="drug-0001", name="Paracetamol 500 mg", concept_id=paracetamol.id)
    opd_encounter = models.Encounter(
        uuid="enc-opd", patient=patient, encounter_type=consultation,
        visit_type=opd, encounter_datetime=NOW - timedelta(days=3)
    )
    xray_encounter = models.Encounter(
        uuid="enc-xray", patient=patient, encounter_type=radiology,
        visit_type=opd, encounter_datetime=NOW - timedelta(days=2)
    )
    db.add_all([tablet, opd_encounter, xray_encounter])
    db.flush()

    db.add_all([
        models.EncounterProvider(encounter_id=opd_encounter.id, provider_id=doctor.id),
        models.EncounterProvider(encounter_id=xray_encounter.id, provider_id=doctor.id),
        models.DrugOrder(
            uuid="order-0001", encounter_id=opd_encounter.id, patient_id=patient.id,
            drug_id=tablet.id, dose=1, dose_units="Tablet", route="Oral",
            date_activated=opd_encounter.encounter_datetime
        ),
        models.DrugOrder(
            uuid="order-0002", encounter_id=opd_encounter.id, patient_id=patient.id,
            drug_non_coded="Herbal cough syrup",
            date_activated=opd_encounter.encounter_datetime
        ),
        models.DrugOrder(
            uuid="order-old", encounter_id=opd_encounter.id, patient_id=patient.id,
            drug_id=tablet.id, date_activated=NOW - timedelta(days=90)
        ),
        models.Obs(
            uuid="obs-1", encounter_id=opd_encounter.id, person_id=patient.id,
            category="chief_complaint", value_coded_id=headache.id,
            obs_datetime=opd_encounter.encounter_datetime
        ),
        models.Obs(
            uuid="obs-2", encounter_id=opd_encounter.id, person_id=patient.id,
            category="physical_examination", concept_id=pulse.id, value_numeric=82, units="/min",
            obs_datetime=opd_encounter.encounter_datetime
        ),
        models.Obs(
            uuid="obs-3", encounter_id=xray_encounter.id, person_id=patient.id,
            category="diagnostic", concept_id=chest_xray.id, value_text="No active lung lesion",
            document_url="https://hip.example.org/documents/chest-xray.pdf",
            content_type="application/pdf",
            obs_datetime=xray_encounter.encounter_datetime
        ),
    ])
    db.commit()


@pytest.fixture(autouse=True, scope="module")
def seeded_database():
    """Recreate and seed the EMR tables once for this module"""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    _seed(db)
    db.close()
    yield
    app.dependency_overrides[get_settings] = override_get_settings


def _visit_params(**overrides):
    params = {
        "patientId": PATIENT_UUID,
        "visitType": "OPD",
        "fromDate": FROM_DATE,
        "toDate": TO_DATE,
    }
    params.update(overrides)
    return {key: value for key, value in params.items() if value is not None}


# ============================================================================
# HEALTH CHECK TESTS
# ============================================================================

def test_health_check():
    """Test health check returns {\"status\": \"ok\"}"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


# ============================================================================
# PRESCRIPTION TESTS
# ============================================================================

class TestPrescriptions:
    """Test /rest/v1/hip/prescriptions"""

    def test_returns_one_document_for_recent_orders(self):
        response = client.get("/rest/v1/hip/prescriptions", params={"patientId": PATIENT_UUID})

        assert response.status_code == 200
        data = response.json()
        assert data["errors"] == []
        assert len(data["documents"]) == 1

        document = data["documents"][0]
        assert document["encounter_uuid"] == "enc-opd"
        assert document["document_id"].startswith("PR-")
        assert document["care_context"] == {
            "reference": "enc-opd",
            "care_context_type": "Visit",
            "display": "OPD"
        }

        bundle = document["bundle"]
        assert bundle["resourceType"] == "Bundle"
        assert bundle["type"] == "document"
        assert bundle["id"] == document["document_id"]
        assert bundle["entry"][0]["resource"]["resourceType"] == "Composition"

        requests = [
            e["resource"]["id"] for e in bundle["entry"]
            if e["resource"]["resourceType"] == "MedicationRequest"
        ]
        # Non-coded and out-of-window orders are not exported
        assert requests == ["order-0001"]

    def test_document_id_is_stable_across_requests(self):
        first = client.get("/rest/v1/hip/prescriptions", params={"patientId": PATIENT_UUID}).json()
        second = client.get("/rest/v1/hip/prescriptions", params={"patientId": PATIENT_UUID}).json()

        assert first["documents"][0]["document_id"] == second["documents"][0]["document_id"]

    def test_missing_patient_id(self):
        response = client.get("/rest/v1/hip/prescriptions")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == 1000

    def test_unknown_patient(self):
        response = client.get("/rest/v1/hip/prescriptions", params={"patientId": "no-such-patient"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == 1002

    def test_patient_without_orders(self):
        response = client.get("/rest/v1/hip/prescriptions", params={"patientId": EMPTY_PATIENT_UUID})

        assert response.status_code == 200
        assert response.json()["documents"] == []


# ============================================================================
# VISIT DOCUMENT TESTS
# ============================================================================

class TestOPConsult:
    """Test /rest/v1/hip/opConsult/visit"""

    def test_returns_consultation_document(self):
        response = client.get("/rest/v1/hip/opConsult/visit", params=_visit_params())

        assert response.status_code == 200
        documents = response.json()["documents"]
        assert len(documents) == 1
        assert documents[0]["document_id"].startswith("OP-")

        composition = documents[0]["bundle"]["entry"][0]["resource"]
        assert [s["title"] for s in composition["section"]] == [
            "Chief complaints", "Medical history", "Physical examination"
        ]
        assert composition["section"][0]["entry"][0]["reference"] == "Condition/obs-1"
        assert composition["section"][1]["emptyReason"]["coding"][0]["code"] == "unavailable"
        assert composition["section"][2]["entry"][0]["reference"] == "Observation/obs-2"

    def test_visit_type_is_case_insensitive(self):
        response = client.get("/rest/v1/hip/opConsult/visit", params=_visit_params(visitType="opd"))

        assert response.status_code == 200
        assert len(response.json()["documents"]) == 1

    def test_missing_visit_type(self):
        response = client.get("/rest/v1/hip/opConsult/visit", params=_visit_params(visitType=None))

        assert response.status_code == 400
        assert response.json()["error"]["code"] == 1001

    def test_unknown_visit_type(self):
        response = client.get("/rest/v1/hip/opConsult/visit", params=_visit_params(visitType="IPD"))

        assert response.status_code == 400
        assert response.json()["error"]["code"] == 1003

    def test_invalid_date(self):
        response = client.get("/rest/v1/hip/opConsult/visit", params=_visit_params(fromDate="15-01-2024"))

        assert response.status_code == 400
        body = response.json()
        assert body["error"]["code"] == 1004
        assert "15-01-2024" in body["error"]["message"]

    def test_date_range_without_encounters(self):
        response = client.get(
            "/rest/v1/hip/opConsult/visit",
            params=_visit_params(fromDate="2020-01-01", toDate="2020-01-31")
        )

        assert response.status_code == 200
        assert response.json()["documents"] == []


class TestDiagnosticReports:
    """Test /rest/v1/hip/diagnosticReports/visit"""

    def test_returns_radiology_document(self):
        response = client.get("/rest/v1/hip/diagnosticReports/visit", params=_visit_params())

        assert response.status_code == 200
        documents = response.json()["documents"]
        assert len(documents) == 1
        assert documents[0]["encounter_uuid"] == "enc-xray"
        assert documents[0]["care_context"]["reference"] == "enc-xray"
        assert documents[0]["document_id"].startswith("DR-")

        reports = [
            e["resource"] for e in documents[0]["bundle"]["entry"]
            if e["resource"]["resourceType"] == "DiagnosticReport"
        ]
        assert reports[0]["conclusion"] == "No active lung lesion"
        assert reports[0]["presentedForm"][0]["url"] == "https://hip.example.org/documents/chest-xray.pdf"


# ============================================================================
# CONFIGURATION FAILURE TESTS
# ============================================================================

def test_missing_org_base_url_fails_request():
    """Unconfigured facility URL is a server-side failure, not a client error"""
    app.dependency_overrides[get_settings] = lambda: Settings(hfr_id="IN2910000001", hfr_url="")
    try:
        response = client.get("/rest/v1/hip/prescriptions", params={"patientId": PATIENT_UUID})
    finally:
        app.dependency_overrides[get_settings] = override_get_settings

    assert response.status_code == 500
    body = response.json()
    assert body["documents"] == []
    assert "hfr_url" in body["error"]
