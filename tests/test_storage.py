"""Tests for the record repositories."""

import json
from datetime import date
from pathlib import Path

import pytest

from irb_compliance.errors import NotFoundError
from irb_compliance.models.adverse_event import AdverseEvent, Hospitalization
from irb_compliance.models.deviation import ProtocolDeviation
from irb_compliance.models.enums import (
    AEExpectedness,
    AERelatedness,
    AESeverity,
    DeviationSeverity,
    DeviationStatus,
    DeviationType,
    ReportingTimeline,
)
from irb_compliance.ports.storage import InMemoryRepository, JsonFileRepository


def _adverse_event(event_id: str = "ae-1", **overrides) -> AdverseEvent:
    data = {
        "id": event_id,
        "study_id": "a1b2c3d4-study",
        "severity": AESeverity.MODERATE,
        "expectedness": AEExpectedness.UNEXPECTED,
        "relatedness": AERelatedness.PROBABLE,
        "onset_date": date(2025, 3, 8),
        "reported_by": "coordinator-1",
    }
    data.update(overrides)
    return AdverseEvent(**data)


def _deviation(deviation_id: str = "dev-1", **overrides) -> ProtocolDeviation:
    data = {
        "id": deviation_id,
        "study_id": "a1b2c3d4-study",
        "deviation_type": DeviationType.INFORMED_CONSENT,
        "severity": DeviationSeverity.MAJOR,
        "description": "Consent signed after first procedure",
        "reported_by": "coordinator-1",
    }
    data.update(overrides)
    return ProtocolDeviation(**data)


@pytest.fixture(params=["memory", "json"])
def ae_repository(request, tmp_path: Path):
    if request.param == "memory":
        return InMemoryRepository(AdverseEvent, "adverse_event")
    return JsonFileRepository(AdverseEvent, "adverse_event", tmp_path / "adverse_events")


class TestRepositoryContract:
    """Behaviour shared by both repositories."""

    def test_create_and_get(self, ae_repository) -> None:
        """A created record can be read back by id."""
        ae_repository.create(_adverse_event())
        loaded = ae_repository.get("ae-1")
        assert loaded.id == "ae-1"
        assert loaded.onset_date == date(2025, 3, 8)

    def test_missing_record_raises_not_found(self, ae_repository) -> None:
        """Unknown ids raise NotFoundError with the entity type."""
        with pytest.raises(NotFoundError) as exc_info:
            ae_repository.get("ae-missing")
        assert exc_info.value.entity_type == "adverse_event"
        assert exc_info.value.entity_id == "ae-missing"

    def test_duplicate_create_rejected(self, ae_repository) -> None:
        """Creating the same id twice is an error."""
        ae_repository.create(_adverse_event())
        with pytest.raises(ValueError):
            ae_repository.create(_adverse_event())

    def test_update_merges_changes(self, ae_repository) -> None:
        """Only the given fields change."""
        ae_repository.create(_adverse_event(description="Rash"))
        updated = ae_repository.update("ae-1", {"severity": AESeverity.SEVERE})
        assert updated.severity == AESeverity.SEVERE
        assert updated.description == "Rash"
        assert ae_repository.get("ae-1").severity == AESeverity.SEVERE

    def test_update_missing_raises_not_found(self, ae_repository) -> None:
        """Updating an unknown record does not create it."""
        with pytest.raises(NotFoundError):
            ae_repository.update("ae-missing", {"description": "x"})

    def test_delete_is_idempotent(self, ae_repository) -> None:
        """Deleting twice leaves no record and raises nothing."""
        ae_repository.create(_adverse_event())
        ae_repository.delete("ae-1")
        ae_repository.delete("ae-1")
        assert ae_repository.find() == []

    def test_find_with_predicate(self, ae_repository) -> None:
        """find filters with the given predicate."""
        ae_repository.create(_adverse_event("ae-1"))
        ae_repository.create(_adverse_event("ae-2", severity=AESeverity.LIFE_THREATENING))
        serious = ae_repository.find(lambda ae: ae.is_sae)
        assert [ae.id for ae in serious] == ["ae-2"]
        assert len(ae_repository.find()) == 2

    def test_reads_return_copies(self, ae_repository) -> None:
        """Mutating a returned record does not change what is stored."""
        ae_repository.create(_adverse_event())
        loaded = ae_repository.get("ae-1")
        loaded.follow_up_report_ids.append("doc-1")
        assert ae_repository.get("ae-1").follow_up_report_ids == []


class TestDerivedFieldsSurviveStorage:
    """Derived fields are recomputed, never read back from storage."""

    def test_reloaded_adverse_event_matches(self, ae_repository) -> None:
        """A reloaded event reports the same derived values."""
        event = _adverse_event(
            hospitalizations=[
                Hospitalization(admission_date=date(2025, 3, 9), reason="Observation")
            ]
        )
        ae_repository.create(event)
        loaded = ae_repository.get("ae-1")

        assert loaded.is_sae is True
        assert loaded.reporting_timeline == ReportingTimeline.EXPEDITED_7_DAY
        derived = ["is_sae", "reportable_to_fda", "reportable_to_sponsor", "reportable_to_irb"]
        original_dump = event.model_dump()
        loaded_dump = loaded.model_dump()
        for name in derived + ["reporting_timeline"]:
            assert loaded_dump[name] == original_dump[name]

    def test_stored_derived_values_are_ignored(self, tmp_path: Path) -> None:
        """Tampered derived values on disk are replaced by recomputed ones."""
        repo = JsonFileRepository(ProtocolDeviation, "deviation", tmp_path / "deviations")
        repo.create(
            _deviation(severity=DeviationSeverity.MINOR, deviation_type=DeviationType.VISIT_WINDOW)
        )
        path = tmp_path / "deviations" / "dev-1.json"
        data = json.loads(path.read_text())
        data["reportable_to_fda"] = True
        data["reportable_to_irb"] = True
        path.write_text(json.dumps(data))

        loaded = repo.get("dev-1")
        assert loaded.reportable_to_fda is False
        assert loaded.reportable_to_irb is False


class TestJsonFileRepository:
    """Tests specific to the JSON file repository."""

    def test_one_file_per_record(self, tmp_path: Path) -> None:
        """Each record is written to <id>.json."""
        repo = JsonFileRepository(ProtocolDeviation, "deviation", tmp_path / "deviations")
        repo.create(_deviation("dev-1"))
        repo.create(_deviation("dev-2"))
        assert sorted(p.name for p in (tmp_path / "deviations").iterdir()) == [
            "dev-1.json",
            "dev-2.json",
        ]

    def test_unreadable_files_are_skipped(self, tmp_path: Path) -> None:
        """A corrupt file does not break listing."""
        repo = JsonFileRepository(ProtocolDeviation, "deviation", tmp_path / "deviations")
        repo.create(_deviation("dev-1"))
        (tmp_path / "deviations" / "dev-2.json").write_text("{broken")
        assert [d.id for d in repo.find()] == ["dev-1"]

    def test_persists_across_instances(self, tmp_path: Path) -> None:
        """A new repository over the same directory sees earlier records."""
        JsonFileRepository(ProtocolDeviation, "deviation", tmp_path / "d").create(
            _deviation(status=DeviationStatus.RESOLVED)
        )
        reopened = JsonFileRepository(ProtocolDeviation, "deviation", tmp_path / "d")
        assert reopened.get("dev-1").status == DeviationStatus.RESOLVED
