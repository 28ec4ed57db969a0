"""
Scenario Persistence Test Module

Tests for tcc_engine/services/persistence.py.

Test Coverage:
- Save / list / get / delete for scenarios, batch runs and optimizer configs
- Replace by id, newest-N retention by createdAt (naive timestamps read as UTC)
- Payload size cap rejects without touching stored data
- Unreadable stored documents load as empty
- Synonym map round trip
- Reloading a saved scenario against changed provider / market data
"""

from datetime import datetime, timedelta, timezone

import pytest

from tcc_engine.models.schemas import (
    BatchResults,
    OptimizerConfigSnapshot,
    SavedBatchRun,
    SavedOptimizerConfig,
    SavedScenario,
    ScenarioInputs,
)
from tcc_engine.services.persistence import (
    PROVIDER_NOT_FOUND_WARNING,
    SCENARIOS_KEY,
    SPECIALTY_NOT_FOUND_WARNING,
    SYNONYM_MAP_KEY,
    InMemoryScenarioRepository,
    load_saved_scenario,
    serialized_size_bytes,
)


T0 = datetime(2026, 2, 1, 8, 0, tzinfo=timezone.utc)


def saved_scenario(scenario_id: str, minutes: int = 0, **fields) -> SavedScenario:
    record = dict(
        id=scenario_id,
        name=f"Scenario {scenario_id}",
        createdAt=T0 + timedelta(minutes=minutes),
        scenarioInputs=ScenarioInputs(proposedCFPercentile=60, psqPercent=2),
    )
    record.update(fields)
    return SavedScenario(**record)


@pytest.fixture
def repo(settings) -> InMemoryScenarioRepository:
    return InMemoryScenarioRepository()


# =============================================================================
# Repository
# =============================================================================

class TestSavedScenarios:
    """Tests for saved scenario storage."""

    def test_save_and_get(self, repo):
        assert repo.save_scenario(saved_scenario("a")) is True
        loaded = repo.get_scenario("a")
        assert loaded is not None
        assert loaded.scenarioInputs.proposedCFPercentile == 60
        assert loaded.createdAt == T0
        assert repo.get_scenario("missing") is None

    def test_save_replaces_same_id(self, repo):
        repo.save_scenario(saved_scenario("a"))
        repo.save_scenario(saved_scenario("a", name="Renamed"))
        scenarios = repo.list_scenarios()
        assert len(scenarios) == 1
        assert scenarios[0].name == "Renamed"

    def test_list_ordered_by_created_at(self, repo):
        repo.save_scenario(saved_scenario("late", minutes=10))
        repo.save_scenario(saved_scenario("early", minutes=1))
        assert [s.id for s in repo.list_scenarios()] == ["early", "late"]

    def test_mixed_offsets_order_by_instant(self, repo):
        """Naive timestamps read as UTC; offsets convert before ordering."""
        repo.save_scenario(saved_scenario("utc"))
        repo.save_scenario(SavedScenario.model_validate({
            "id": "naive", "name": "Naive", "createdAt": "2026-02-01T08:30:00",
            "scenarioInputs": {},
        }))
        repo.save_scenario(SavedScenario.model_validate({
            "id": "offset", "name": "Offset", "createdAt": "2026-02-01T09:00:00+02:00",
            "scenarioInputs": {},
        }))
        scenarios = repo.list_scenarios()
        assert [s.id for s in scenarios] == ["offset", "utc", "naive"]
        assert all(s.createdAt.tzinfo is not None for s in scenarios)
        assert scenarios[0].createdAt == T0 - timedelta(hours=1)

    def test_keeps_newest(self, settings):
        repo = InMemoryScenarioRepository(max_saved_items=3)
        for i in range(5):
            repo.save_scenario(saved_scenario(f"s{i}", minutes=i))
        assert [s.id for s in repo.list_scenarios()] == ["s2", "s3", "s4"]

    def test_oversized_payload_rejected(self, settings):
        repo = InMemoryScenarioRepository(max_payload_bytes=4000)
        assert repo.save_scenario(saved_scenario("small")) is True
        assert repo.save_scenario(saved_scenario("big", name="x" * 10000)) is False
        assert [s.id for s in repo.list_scenarios()] == ["small"]

    def test_delete(self, repo):
        repo.save_scenario(saved_scenario("a"))
        repo.save_scenario(saved_scenario("b", minutes=1))
        assert repo.delete_scenario("a") is True
        assert repo.delete_scenario("a") is False
        assert [s.id for s in repo.list_scenarios()] == ["b"]

    def test_unreadable_document_loads_empty(self, repo):
        repo.documents[SCENARIOS_KEY] = "{not json"
        assert repo.list_scenarios() == []
        repo.documents[SCENARIOS_KEY] = '[{"id": "a"}]'
        assert repo.list_scenarios() == []
        assert repo.save_scenario(saved_scenario("b")) is True
        assert [s.id for s in repo.list_scenarios()] == ["b"]

    def test_size_helper(self):
        assert serialized_size_bytes({"a": "é"}) == len('{"a": "\\u00e9"}')
        scenario = saved_scenario("a")
        assert serialized_size_bytes(scenario) == len(scenario.model_dump_json().encode('utf-8'))


class TestOtherSavedItems:
    """Batch runs, optimizer configs and the synonym map."""

    def test_batch_run(self, repo):
        run = SavedBatchRun(
            id="run-1",
            name="January",
            createdAt=T0,
            results=BatchResults(rows=[], runAt=T0, scenarioCount=0, providerCount=0),
        )
        assert repo.save_batch_run(run) is True
        assert repo.get_batch_run("run-1").results.runAt == T0
        assert [r.id for r in repo.list_batch_runs()] == ["run-1"]
        assert repo.delete_batch_run("run-1") is True
        assert repo.list_batch_runs() == []

    def test_optimizer_config(self, repo):
        config = SavedOptimizerConfig(
            id="cfg-1",
            name="Baseline",
            createdAt=T0,
            snapshot=OptimizerConfigSnapshot(selectedSpecialties=["Internal Medicine"]),
        )
        assert repo.save_optimizer_config(config) is True
        loaded = repo.get_optimizer_config("cfg-1")
        assert loaded.snapshot.selectedSpecialties == ["Internal Medicine"]
        assert loaded.snapshot.lastRunResult is None
        assert repo.delete_optimizer_config("cfg-1") is True
        assert repo.get_optimizer_config("cfg-1") is None

    def test_synonym_map(self, repo):
        assert repo.load_synonym_map() == {}
        assert repo.save_synonym_map({"gen med": "Internal Medicine"}) is True
        assert repo.load_synonym_map() == {"gen med": "Internal Medicine"}

    def test_unreadable_synonym_map(self, repo):
        repo.documents[SYNONYM_MAP_KEY] = '["not", "a", "map"]'
        assert repo.load_synonym_map() == {}


# =============================================================================
# Reload
# =============================================================================

class TestLoadSavedScenario:
    """Tests for restoring a saved scenario against current data."""

    def _providers(self, make_provider):
        return [
            make_provider(providerId="C-1", specialty="Cardiology"),
            make_provider(providerId="IM-1"),
            make_provider(providerId="IM-2"),
        ]

    def test_everything_found(self, make_provider, market_rows):
        saved = saved_scenario("a", selectedProviderId="IM-2", selectedSpecialty="Internal Medicine")
        outcome = load_saved_scenario(saved, self._providers(make_provider), market_rows)
        assert outcome.selectedProviderId == "IM-2"
        assert outcome.selectedSpecialty == "Internal Medicine"
        assert outcome.warning is None
        assert outcome.scenarioInputs == saved.scenarioInputs

    def test_missing_provider_falls_back_within_specialty(self, make_provider, market_rows):
        saved = saved_scenario("a", selectedProviderId="GONE", selectedSpecialty="Internal Medicine")
        outcome = load_saved_scenario(saved, self._providers(make_provider), market_rows)
        assert outcome.selectedProviderId == "IM-1"
        assert outcome.warning == PROVIDER_NOT_FOUND_WARNING
        assert outcome.scenarioInputs.psqPercent == 2

    def test_missing_specialty_falls_back_to_first_market(self, make_provider, market_rows):
        saved = saved_scenario("a", selectedProviderId="IM-1", selectedSpecialty="Dermatology")
        outcome = load_saved_scenario(saved, self._providers(make_provider), market_rows)
        assert outcome.selectedSpecialty == "Internal Medicine"
        assert outcome.selectedProviderId == "IM-1"
        assert outcome.warning == SPECIALTY_NOT_FOUND_WARNING

    def test_both_missing(self, make_provider, market_rows):
        saved = saved_scenario("a", selectedProviderId="GONE", selectedSpecialty="Dermatology")
        outcome = load_saved_scenario(saved, self._providers(make_provider), market_rows)
        assert outcome.selectedSpecialty == "Internal Medicine"
        assert outcome.selectedProviderId == "IM-1"
        assert outcome.warning == f"{SPECIALTY_NOT_FOUND_WARNING} {PROVIDER_NOT_FOUND_WARNING}"

    def test_specialty_from_provider_snapshot(self, make_provider, market_rows):
        saved = saved_scenario("a", providerSnapshot=make_provider(specialty="Cardiology"))
        outcome = load_saved_scenario(saved, self._providers(make_provider), market_rows)
        assert outcome.selectedSpecialty == "Cardiology"
        assert outcome.warning is None

    def test_no_provider_in_specialty(self, make_provider, market_rows):
        saved = saved_scenario("a", selectedProviderId="GONE", selectedSpecialty="Cardiology")
        outcome = load_saved_scenario(saved, [make_provider(providerId="IM-1")], market_rows)
        assert outcome.selectedProviderId is None
        assert outcome.selectedSpecialty == "Cardiology"
