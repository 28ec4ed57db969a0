"""
Settings and environment management module for the TCC Engine.

This module provides centralized configuration management using pydantic-settings,
which automatically loads settings from environment variables and .env files.

Key Features:
- Environment variable validation and type coercion
- Engine defaults for risk thresholds, outlier parameters and batch pacing
- Singleton pattern via @lru_cache for efficient access
- Persistence limits (payload size cap, saved item retention)

Environment Variables (all optional, prefix TCC_):
- TCC_LOG_LEVEL: Root log level for the API process (default: INFO)
- TCC_CORS_ORIGINS: Comma separated list of allowed browser origins
- TCC_BATCH_CHUNK_SIZE: Rows per batch chunk between progress callbacks (default: 200)
- TCC_MAX_PAYLOAD_BYTES: Size cap for persisted payloads (default: 4 MB)

Engine Defaults:
- low_fte_risk_threshold: 0.7 (Clinical or total FTE below this is high risk)
- low_wrvu_warning_threshold: 1000 (wRVU volume below this makes ratios unstable)
- fmv_high_percentile: 90 (Modeled TCC percentile above this suggests an FMV review)
- outlier_iqr_k: 1.5 (Tukey fence multiplier)
- outlier_mad_z_threshold: 3.5 (Modified z-score cut-off)

Usage:
    from tcc_engine.core.config import get_settings

    settings = get_settings()
    chunk_size = settings.batch_chunk_size
"""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Engine settings loaded from environment variables.

    Every numeric default here is the documented business default. Service
    functions accept explicit overrides and fall back to these values, so
    tests can pin behavior without touching the environment.

    Attributes:
        log_level: Log level applied by main.py logging.basicConfig.
        cors_origins: Browser origins allowed by the API CORS middleware.
        batch_chunk_size: Rows processed between batch progress callbacks.
        max_payload_bytes: Largest serialized payload the repository will store.
        max_saved_items: Most recent saved scenarios/runs/configs kept per kind.
        low_fte_risk_threshold: FTE below which a scenario carries a high-risk flag.
        low_wrvu_warning_threshold: wRVU volume below which a warning is raised.
        fmv_high_percentile: Modeled TCC percentile above which an FMV check is suggested.
        outlier_iqr_k: IQR fence multiplier.
        outlier_mad_z_threshold: MAD modified z-score threshold.
        specialty_suggestion_min_score: Minimum similarity for specialty suggestions.
    """

    model_config = SettingsConfigDict(
        env_prefix='TCC_',
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
        case_sensitive=False,
    )

    # =========================================================================
    # Process / API
    # =========================================================================

    log_level: str = 'INFO'

    cors_origins: List[str] = [
        'http://localhost:3000',
        'http://127.0.0.1:3000',
    ]

    # =========================================================================
    # Batch pacing and persistence limits
    # =========================================================================

    # Rows per chunk; progress callback and cancellation check run between chunks
    batch_chunk_size: int = 200

    # 4 MB cap on any serialized payload handed to the repository
    max_payload_bytes: int = 4 * 1024 * 1024

    # Saved scenarios, runs and optimizer configs are trimmed to the newest N
    max_saved_items: int = 20

    # =========================================================================
    # Scenario risk and governance defaults
    # =========================================================================

    low_fte_risk_threshold: float = 0.7

    low_wrvu_warning_threshold: float = 1000.0

    # Modeled TCC percentile strictly above this suggests an FMV review
    fmv_high_percentile: float = 90.0

    # =========================================================================
    # Outlier detection defaults
    # =========================================================================

    outlier_iqr_k: float = 1.5

    outlier_mad_z_threshold: float = 3.5

    # =========================================================================
    # Specialty matching
    # =========================================================================

    specialty_suggestion_min_score: float = 0.45


@lru_cache()
def get_settings() -> Settings:
    """
    Get the engine settings singleton.

    Returns:
        Settings: The cached settings instance.

    Note:
        To refresh settings in tests, clear the cache:
        >>> get_settings.cache_clear()
    """
    return Settings()
