"""
Org Context and Identity Tests

Tests for:
1. Resolving the organization context from settings
2. Identifier systems and the organization's logical reference
3. Deterministic document ids and resource references
"""
import pytest
from dataclasses import FrozenInstanceError
from datetime import datetime

from hip_bundler.config import Settings
from hip_bundler.fhir.context import OrgContext, resolve_org_context
from hip_bundler.fhir.errors import MissingContextError
from hip_bundler.fhir.identity import (
    document_id,
    generate_id,
    identifier_for,
    reference_to,
    resource_id,
    resource_key,
)
from hip_bundler.fhir.mappers import EncounterMapper, PatientMapper
from hip_bundler.fhir.records import EncounterRecord, PatientRecord


ORG = OrgContext(
    organization_id="IN2910000001",
    name="Sunrise Clinic",
    identifier_system="https://facility.ndhm.gov.in",
    base_url="https://hip.example.org/"
)

PATIENT = PatientRecord(uuid="pat-0001", name="Asha Verma")


def _settings(**overrides):
    values = {
        "hfr_id": "IN2910000001",
        "hfr_name": "Sunrise Clinic",
        "hfr_url": "https://hip.example.org",
    }
    values.update(overrides)
    return Settings(**values)


class TestResolveOrgContext:
    """Test building the org context from configuration."""

    def test_resolves_from_settings(self):
        org = resolve_org_context(_settings())

        assert org.organization_id == "IN2910000001"
        assert org.name == "Sunrise Clinic"
        assert org.identifier_system == "https://facility.ndhm.gov.in"
        assert org.base_url == "https://hip.example.org"

    def test_missing_base_url_raises(self):
        with pytest.raises(MissingContextError) as exc_info:
            resolve_org_context(_settings(hfr_url=""))

        assert "hfr_url" in str(exc_info.value)

    def test_malformed_base_url_raises(self):
        with pytest.raises(MissingContextError) as exc_info:
            resolve_org_context(_settings(hfr_url="not a url"))

        assert "malformed" in str(exc_info.value)

    def test_care_context_type_defaults_to_visit(self):
        assert resolve_org_context(_settings()).care_context_type == "Visit"
        assert resolve_org_context(_settings(care_context_type="Program")).care_context_type == "Program"

    def test_context_is_immutable(self):
        org = resolve_org_context(_settings())

        with pytest.raises(FrozenInstanceError):
            org.name = "Other"


class TestOrgContext:
    """Test identifier systems and the organization reference."""

    def test_system_for_strips_trailing_slash(self):
        assert ORG.system_for("document") == "https://hip.example.org/document"

    def test_identifier_for(self):
        identifier = identifier_for(ORG, "patient", "pat-0001")

        assert identifier.system == "https://hip.example.org/patient"
        assert identifier.value == "pat-0001"

    def test_organization_reference_is_logical(self):
        ref = ORG.organization_reference()

        assert ref.reference is None
        assert ref.display == "Sunrise Clinic"
        assert ref.identifier.value == "IN2910000001"
        assert ref.identifier.system == "https://facility.ndhm.gov.in"

    def test_organization_reference_without_name_uses_id(self):
        org = OrgContext(
            organization_id="IN2910000001",
            name="",
            identifier_system="",
            base_url="https://hip.example.org"
        )
        ref = org.organization_reference()

        assert ref.display == "IN2910000001"
        assert ref.identifier.system is None


class TestIdentity:
    """Test document ids, resource ids and references."""

    def test_document_id_uses_encounter_id(self):
        encounter = EncounterRecord(
            uuid="enc-0001",
            encounter_datetime=datetime(2024, 1, 15),
            patient=PATIENT,
            encounter_id=42
        )

        assert document_id("PR", encounter) == "PR-42"
        assert document_id("PR", encounter) == document_id("PR", encounter)

    def test_document_id_falls_back_to_uuid(self):
        encounter = EncounterRecord(uuid="enc-0001", encounter_datetime=datetime(2024, 1, 15), patient=PATIENT)

        assert document_id("OP", encounter) == "OP-enc-0001"

    def test_resource_id_prefers_source_uuid(self):
        assert resource_id("abc-123") == "abc-123"
        assert resource_id(None) != resource_id(None)

    def test_generate_id_is_unique(self):
        ids = {generate_id() for _ in range(100)}

        assert len(ids) == 100

    def test_encounter_reference_display_is_encounter_type(self):
        patient_ref = reference_to(PatientMapper.map(PATIENT, ORG))
        typed = EncounterRecord(
            uuid="enc-0001", encounter_datetime=datetime(2024, 1, 15), patient=PATIENT,
            encounter_type="Consultation"
        )
        untyped = EncounterRecord(uuid="enc-0002", encounter_datetime=datetime(2024, 1, 15), patient=PATIENT)

        assert reference_to(EncounterMapper.map(typed, patient_ref, ORG)).display == "Consultation"
        assert reference_to(EncounterMapper.map(untyped, patient_ref, ORG)).display == "Encounter"

    def test_reference_to_patient(self):
        patient = PatientMapper.map(PATIENT, ORG)
        ref = reference_to(patient)

        assert ref.reference == "Patient/pat-0001"
        assert ref.display == "Asha Verma"
        assert resource_key(patient) == ("Patient", "pat-0001")
