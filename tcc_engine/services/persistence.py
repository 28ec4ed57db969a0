"""
Scenario Persistence Service

Storage boundary for saved scenarios, saved batch runs, saved optimizer
configs and the specialty synonym map.

The engine never depends on a concrete store. Callers inject any object that
satisfies ScenarioRepository; InMemoryScenarioRepository keeps serialized
JSON documents in a dict, the way a browser or document store would.

Rules:
- Payloads larger than max_payload_bytes (4 MB) are rejected with False
- Stored documents that fail to decode or validate load as empty / None
- Saved lists keep only the newest max_saved_items (20) by createdAt

Reload:
    load_saved_scenario() restores the saved ScenarioInputs unchanged and
    resolves the saved provider / specialty against current data, falling
    back with a warning instead of failing.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence, Type, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from tcc_engine.core.config import get_settings
from tcc_engine.models.schemas import (
    MarketRow,
    ProviderRow,
    SavedBatchRun,
    SavedOptimizerConfig,
    SavedScenario,
    ScenarioLoadOutcome,
)
from tcc_engine.services.specialty_match import normalize_specialty_key


logger = logging.getLogger(__name__)


PROVIDER_NOT_FOUND_WARNING: str = "Provider from scenario not found; specialty and inputs restored."
SPECIALTY_NOT_FOUND_WARNING: str = "Specialty from scenario not in market data; inputs and provider restored."

SCENARIOS_KEY: str = "saved_scenarios"
BATCH_RUNS_KEY: str = "saved_batch_runs"
OPTIMIZER_CONFIGS_KEY: str = "saved_optimizer_configs"
SYNONYM_MAP_KEY: str = "synonym_map"

SavedItem = TypeVar('SavedItem', SavedScenario, SavedBatchRun, SavedOptimizerConfig)

_SYNONYM_ADAPTER = TypeAdapter(Dict[str, str])


def serialized_size_bytes(payload: Any) -> int:
    """UTF-8 byte length of the JSON serialization of a model, list or plain value."""
    if isinstance(payload, BaseModel):
        text = payload.model_dump_json()
    elif isinstance(payload, list) and payload and all(isinstance(p, BaseModel) for p in payload):
        text = "[" + ",".join(p.model_dump_json() for p in payload) + "]"
    else:
        text = json.dumps(payload, default=str)
    return len(text.encode('utf-8'))


# =============================================================================
# Repository Protocol
# =============================================================================


class ScenarioRepository(Protocol):
    """Storage operations the engine's callers rely on."""

    def save_scenario(self, scenario: SavedScenario) -> bool: ...

    def list_scenarios(self) -> List[SavedScenario]: ...

    def get_scenario(self, scenario_id: str) -> Optional[SavedScenario]: ...

    def delete_scenario(self, scenario_id: str) -> bool: ...

    def save_batch_run(self, run: SavedBatchRun) -> bool: ...

    def list_batch_runs(self) -> List[SavedBatchRun]: ...

    def get_batch_run(self, run_id: str) -> Optional[SavedBatchRun]: ...

    def delete_batch_run(self, run_id: str) -> bool: ...

    def save_optimizer_config(self, config: SavedOptimizerConfig) -> bool: ...

    def list_optimizer_configs(self) -> List[SavedOptimizerConfig]: ...

    def get_optimizer_config(self, config_id: str) -> Optional[SavedOptimizerConfig]: ...

    def delete_optimizer_config(self, config_id: str) -> bool: ...

    def load_synonym_map(self) -> Dict[str, str]: ...

    def save_synonym_map(self, synonym_map: Dict[str, str]) -> bool: ...


class InMemoryScenarioRepository:
    """
    Dict-backed repository holding one JSON document per key.

    Args:
        max_payload_bytes: Size cap per document (default from settings)
        max_saved_items: Items kept per saved list (default from settings)
    """

    def __init__(
        self,
        max_payload_bytes: Optional[int] = None,
        max_saved_items: Optional[int] = None,
    ):
        settings = get_settings()
        self.max_payload_bytes = max_payload_bytes or settings.max_payload_bytes
        self.max_saved_items = max_saved_items or settings.max_saved_items
        self.documents: Dict[str, str] = {}

    # -------------------------------------------------------------------------
    # Generic list handling
    # -------------------------------------------------------------------------

    def _read_list(self, key: str, model: Type[SavedItem]) -> List[SavedItem]:
        raw = self.documents.get(key)
        if not raw:
            return []
        try:
            return TypeAdapter(List[model]).validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable stored '{key}': {e.error_count()} validation error(s)")
            return []

    def _write_list(self, key: str, items: List[SavedItem], model: Type[SavedItem]) -> bool:
        ordered = sorted(items, key=lambda item: item.createdAt)[-self.max_saved_items:]
        payload = TypeAdapter(List[model]).dump_json(ordered)
        if len(payload) > self.max_payload_bytes:
            logger.warning(
                f"Not saving '{key}': {len(payload)} bytes exceeds cap of {self.max_payload_bytes}"
            )
            return False
        self.documents[key] = payload.decode('utf-8')
        return True

    def _save(self, key: str, item: SavedItem, model: Type[SavedItem]) -> bool:
        if serialized_size_bytes(item) > self.max_payload_bytes:
            logger.warning(f"Not saving {model.__name__} '{item.id}': payload exceeds {self.max_payload_bytes} bytes")
            return False
        items = [existing for existing in self._read_list(key, model) if existing.id != item.id]
        items.append(item)
        return self._write_list(key, items, model)

    def _get(self, key: str, model: Type[SavedItem], item_id: str) -> Optional[SavedItem]:
        for item in self._read_list(key, model):
            if item.id == item_id:
                return item
        return None

    def _delete(self, key: str, model: Type[SavedItem], item_id: str) -> bool:
        items = self._read_list(key, model)
        remaining = [item for item in items if item.id != item_id]
        if len(remaining) == len(items):
            return False
        return self._write_list(key, remaining, model)

    # -------------------------------------------------------------------------
    # Saved scenarios
    # -------------------------------------------------------------------------

    def save_scenario(self, scenario: SavedScenario) -> bool:
        return self._save(SCENARIOS_KEY, scenario, SavedScenario)

    def list_scenarios(self) -> List[SavedScenario]:
        return self._read_list(SCENARIOS_KEY, SavedScenario)

    def get_scenario(self, scenario_id: str) -> Optional[SavedScenario]:
        return self._get(SCENARIOS_KEY, SavedScenario, scenario_id)

    def delete_scenario(self, scenario_id: str) -> bool:
        return self._delete(SCENARIOS_KEY, SavedScenario, scenario_id)

    # -------------------------------------------------------------------------
    # Saved batch runs
    # -------------------------------------------------------------------------

    def save_batch_run(self, run: SavedBatchRun) -> bool:
        return self._save(BATCH_RUNS_KEY, run, SavedBatchRun)

    def list_batch_runs(self) -> List[SavedBatchRun]:
        return self._read_list(BATCH_RUNS_KEY, SavedBatchRun)

    def get_batch_run(self, run_id: str) -> Optional[SavedBatchRun]:
        return self._get(BATCH_RUNS_KEY, SavedBatchRun, run_id)

    def delete_batch_run(self, run_id: str) -> bool:
        return self._delete(BATCH_RUNS_KEY, SavedBatchRun, run_id)

    # -------------------------------------------------------------------------
    # Saved optimizer configs
    # -------------------------------------------------------------------------

    def save_optimizer_config(self, config: SavedOptimizerConfig) -> bool:
        return self._save(OPTIMIZER_CONFIGS_KEY, config, SavedOptimizerConfig)

    def list_optimizer_configs(self) -> List[SavedOptimizerConfig]:
        return self._read_list(OPTIMIZER_CONFIGS_KEY, SavedOptimizerConfig)

    def get_optimizer_config(self, config_id: str) -> Optional[SavedOptimizerConfig]:
        return self._get(OPTIMIZER_CONFIGS_KEY, SavedOptimizerConfig, config_id)

    def delete_optimizer_config(self, config_id: str) -> bool:
        return self._delete(OPTIMIZER_CONFIGS_KEY, SavedOptimizerConfig, config_id)

    # -------------------------------------------------------------------------
    # Synonym map
    # -------------------------------------------------------------------------

    def load_synonym_map(self) -> Dict[str, str]:
        raw = self.documents.get(SYNONYM_MAP_KEY)
        if not raw:
            return {}
        try:
            return _SYNONYM_ADAPTER.validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable stored synonym map")
            return {}

    def save_synonym_map(self, synonym_map: Dict[str, str]) -> bool:
        payload = _SYNONYM_ADAPTER.dump_json(synonym_map)
        if len(payload) > self.max_payload_bytes:
            logger.warning(f"Not saving synonym map: {len(payload)} bytes exceeds cap")
            return False
        self.documents[SYNONYM_MAP_KEY] = payload.decode('utf-8')
        return True


# =============================================================================
# Reload against current data
# =============================================================================


def _provider_key(provider: ProviderRow) -> str:
    return provider.providerId or provider.providerName or ""


def load_saved_scenario(
    saved: SavedScenario,
    providers: Sequence[ProviderRow],
    market_rows: Sequence[MarketRow],
) -> ScenarioLoadOutcome:
    """
    Restore a saved scenario against the currently loaded data.

    The saved ScenarioInputs come back unchanged. A provider that no longer
    exists is replaced by the first provider of the saved specialty; a
    specialty missing from the market is replaced by the first market
    specialty. Each fallback adds its warning.
    """
    warnings: List[str] = []
    specialty = saved.selectedSpecialty
    if specialty is None and saved.providerSnapshot is not None:
        specialty = saved.providerSnapshot.specialty

    market_specialties = [m.specialty for m in market_rows]
    market_keys = {normalize_specialty_key(s) for s in market_specialties}
    if specialty and normalize_specialty_key(specialty) not in market_keys:
        warnings.append(SPECIALTY_NOT_FOUND_WARNING)
        specialty = market_specialties[0] if market_specialties else None

    provider_id = saved.selectedProviderId
    if provider_id is not None and not any(_provider_key(p) == provider_id for p in providers):
        warnings.append(PROVIDER_NOT_FOUND_WARNING)
        wanted = normalize_specialty_key(specialty)
        fallback = next(
            (p for p in providers if wanted and normalize_specialty_key(p.specialty) == wanted),
            None,
        )
        provider_id = _provider_key(fallback) if fallback is not None else None

    if warnings:
        logger.info(f"Saved scenario '{saved.name}' restored with fallbacks: {' '.join(warnings)}")

    return ScenarioLoadOutcome(
        scenarioId=saved.id,
        scenarioInputs=saved.scenarioInputs,
        selectedProviderId=provider_id,
        selectedSpecialty=specialty,
        warning=" ".join(warnings) if warnings else None,
    )


__all__ = [
    'PROVIDER_NOT_FOUND_WARNING',
    'SPECIALTY_NOT_FOUND_WARNING',
    'serialized_size_bytes',
    'ScenarioRepository',
    'InMemoryScenarioRepository',
    'load_saved_scenario',
]
