"""
Core infrastructure package for the TCC Engine.

Provides:
- Configuration management via pydantic-settings (config)
- FastAPI dependency injection utilities (dependencies)

Re-exports allow simplified imports like:

    from tcc_engine.core import get_settings

FastAPI dependencies are imported from tcc_engine.core.dependencies directly;
they depend on the services layer, which itself reads configuration from
this package.
"""

# =============================================================================
# Re-exports from tcc_engine.core.config
# =============================================================================
from tcc_engine.core.config import Settings, get_settings


__all__ = [
    'Settings',
    'get_settings',
]
