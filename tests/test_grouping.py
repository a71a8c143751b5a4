"""
Encounter Grouping Tests

Tests that records are partitioned by owning encounter, that grouping
preserves every record and its order, and that unattributable records
are skipped.
"""
import pytest
from datetime import datetime

from hip_bundler.fhir.errors import GroupingError
from hip_bundler.fhir.grouping import encounter_key, group_by_encounter
from hip_bundler.fhir.records import (
    CHIEF_COMPLAINT,
    DrugOrderRecord,
    EncounterRecord,
    ObservationRecord,
    PatientRecord,
)


PATIENT = PatientRecord(uuid="pat-0001", name="Asha Verma")

ENCOUNTER_A = EncounterRecord(uuid="enc-a", encounter_datetime=datetime(2024, 1, 15, 10, 30), patient=PATIENT)
ENCOUNTER_B = EncounterRecord(uuid="enc-b", encounter_datetime=datetime(2024, 1, 20, 9, 0), patient=PATIENT)


def _order(uuid, encounter):
    return DrugOrderRecord(uuid=uuid, encounter=encounter, drug_non_coded="Syrup")


class TestEncounterKey:
    """Test the grouping key of a single record."""

    def test_key_is_encounter_uuid(self):
        assert encounter_key(_order("o-1", ENCOUNTER_A)) == "enc-a"

    def test_record_without_encounter_raises(self):
        with pytest.raises(GroupingError) as exc_info:
            encounter_key(_order("o-orphan", None))

        assert exc_info.value.source_id == "o-orphan"

    def test_encounter_without_uuid_raises(self):
        encounter = EncounterRecord(uuid=None, encounter_datetime=datetime(2024, 1, 1), patient=PATIENT)

        with pytest.raises(GroupingError):
            encounter_key(_order("o-2", encounter))


class TestGroupByEncounter:
    """Test partitioning of records by encounter."""

    def test_empty_input(self):
        assert group_by_encounter([]) == {}

    def test_groups_keep_first_seen_order(self):
        records = [
            _order("o-1", ENCOUNTER_B),
            _order("o-2", ENCOUNTER_A),
            _order("o-3", ENCOUNTER_B),
        ]

        groups = group_by_encounter(records)

        assert list(groups.keys()) == ["enc-b", "enc-a"]
        assert [r.uuid for r in groups["enc-b"]] == ["o-1", "o-3"]
        assert [r.uuid for r in groups["enc-a"]] == ["o-2"]

    def test_flattened_groups_equal_input(self):
        records = [
            _order("o-1", ENCOUNTER_A),
            _order("o-2", ENCOUNTER_B),
            ObservationRecord(uuid="obs-1", encounter=ENCOUNTER_A, category=CHIEF_COMPLAINT),
            _order("o-3", ENCOUNTER_A),
        ]

        groups = group_by_encounter(records)
        flattened = [record for group in groups.values() for record in group]

        assert sorted(r.uuid for r in flattened) == sorted(r.uuid for r in records)
        assert len(flattened) == len(records)
        for key, group in groups.items():
            assert all(record.encounter_uuid == key for record in group)

    def test_unattributable_record_is_skipped(self, caplog):
        records = [_order("o-1", ENCOUNTER_A), _order("o-orphan", None)]

        with caplog.at_level("WARNING"):
            groups = group_by_encounter(records)

        assert list(groups.keys()) == ["enc-a"]
        assert len(groups["enc-a"]) == 1
        assert "o-orphan" in caplog.text

    def test_accepts_generator(self):
        groups = group_by_encounter(_order(f"o-{i}", ENCOUNTER_A) for i in range(3))

        assert len(groups["enc-a"]) == 3
