from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class Settings:
    """Centralized application settings.

    This keeps environment-variable handling in one place so other modules can
    depend on strongly-typed attributes instead of calling os.getenv
    directly.
    """

    # Recommendation backend selection: "demo" (default) or "llm".
    recommendation_backend: str = os.getenv("RECOMMENDATION_BACKEND", "demo")

    # Upper bound for a single recommendation generation call. When exceeded
    # the pipeline carries on without a bundle and AI placeholders are marked
    # pending.
    recommendation_timeout_seconds: float = float(os.getenv("RECOMMENDATION_TIMEOUT_SECONDS", "5.0"))

    # Summary items at or above this confidence are flagged "high-confidence"
    # when rendered into a note.
    high_confidence_threshold: float = float(os.getenv("HIGH_CONFIDENCE_THRESHOLD", "0.7"))

    # Optional settings for external providers.
    openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY")
    llm_model: str = os.getenv("LLM_MODEL", "gpt-4.1-mini")

    # Used for [CLINIC_NAME] when a consultation does not carry its own.
    default_clinic_name: str = os.getenv("DEFAULT_CLINIC_NAME", "Main Clinic")

    # Optional database configuration for SQL-backed repositories.
    database_url: Optional[str] = os.getenv("DATABASE_URL")
    use_sql_repos: bool = os.getenv("USE_SQL_REPOS", "false").lower() == "true"

    # Basic API authentication configuration.
    # When ENABLE_API_AUTH=true, protected endpoints require a valid API key.
    enable_api_auth: bool = os.getenv("ENABLE_API_AUTH", "false").lower() == "true"
    # Comma-separated list of allowed API keys when auth is enabled.
    api_keys: Optional[str] = os.getenv("API_KEYS")

    # CORS configuration: comma-separated origins. Default is "*" (allow all)
    # which is acceptable for local development but should be tightened in
    # production.
    cors_allow_origins: str = os.getenv("CORS_ALLOW_ORIGINS", "*")

    log_level: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
