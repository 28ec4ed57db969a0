"""
FastAPI dependency injection module for the TCC Engine API.

This module provides reusable FastAPI dependencies for configuration access
and the saved-scenario repository, so endpoint handlers stay decoupled from
concrete storage.

Key Dependencies Provided:
- get_settings_dependency: Returns the cached Settings singleton
- get_repository: Returns the process-wide scenario repository
- SettingsDep: Type alias for injecting Settings into endpoints
- RepositoryDep: Type alias for injecting the repository into endpoints

Usage Examples:
    @router.get("/scenarios")
    async def list_scenarios(repo: RepositoryDep) -> List[SavedScenario]:
        return repo.list_scenarios()

Testing:
    app.dependency_overrides[get_repository] = lambda: InMemoryScenarioRepository()
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from tcc_engine.core.config import Settings, get_settings
from tcc_engine.services.persistence import InMemoryScenarioRepository, ScenarioRepository


# =============================================================================
# Settings Dependency
# =============================================================================

def get_settings_dependency() -> Settings:
    """
    Return the Settings singleton instance.

    Note:
        This is a thin wrapper around get_settings() to enable FastAPI's
        dependency override mechanism for testing:

        app.dependency_overrides[get_settings_dependency] = lambda: test_settings
    """
    return get_settings()


# =============================================================================
# Repository Dependency
# =============================================================================

@lru_cache()
def get_repository() -> ScenarioRepository:
    """
    Return the process-wide scenario repository.

    The default is in-memory; deployments with a document store override
    this dependency.
    """
    return InMemoryScenarioRepository()


# =============================================================================
# Type Aliases for Dependency Injection
# =============================================================================

# Usage: async def endpoint(settings: SettingsDep)
SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]

# Usage: async def endpoint(repo: RepositoryDep)
RepositoryDep = Annotated[ScenarioRepository, Depends(get_repository)]


__all__ = [
    'get_settings_dependency',
    'get_repository',
    'SettingsDep',
    'RepositoryDep',
]
