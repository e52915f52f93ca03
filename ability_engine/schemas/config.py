"""
Configuration Settings.

This module defines the ability engine configuration using Pydantic's BaseSettings.
It automatically loads all configuration from environment variables and .env file
without explicit dotenv loading.

The outbound request timeout has no default: callers must decide how long a
sandboxed network call may take, because once the call has started there is no
way to cancel it cooperatively.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """
    Ability engine settings model.

    All properties are automatically bound from environment variables and .env file.
    Pydantic's BaseSettings handles dotenv loading automatically via model_config.
    """

    # =====================================================================
    # Pydantic Configuration
    # =====================================================================
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
        populate_by_name=True,
    )

    # =====================================================================
    # Ability Registry
    # =====================================================================
    registry_base_url: str = Field(
        default="http://localhost:4111",
        description="Base URL of the ability registry REST API",
        alias="ABILITY_REGISTRY_URL",
        min_length=1,
    )
    api_key: Optional[str] = Field(
        default=None,
        description="API key or session token sent as a bearer token to the registry",
        alias="ABILITY_API_KEY",
    )
    registry_timeout_seconds: float = Field(
        default=10.0,
        description="Per-request timeout in seconds for registry and credential store calls",
        alias="ABILITY_REGISTRY_TIMEOUT",
        gt=0,
        le=120.0,
    )

    # =====================================================================
    # Sandbox Network
    # =====================================================================
    request_timeout_seconds: float = Field(
        ...,
        description="Timeout in seconds applied to every network call made from the sandbox",
        alias="ABILITY_REQUEST_TIMEOUT",
        gt=0,
        le=600.0,
    )
    proxy_url: Optional[str] = Field(
        default=None,
        description="Optional forward proxy used for outgoing sandbox calls",
        alias="ABILITY_PROXY_URL",
    )
    sandbox_env_allowlist: List[str] = Field(
        default_factory=list,
        description="Host environment variable names visible to ability code (JSON list in env)",
        alias="ABILITY_SANDBOX_ENV_ALLOWLIST",
    )
    sandbox_secret: Optional[str] = Field(
        default=None,
        description="Optional value exposed to ability code as env['SECRET']",
        alias="ABILITY_SANDBOX_SECRET",
    )

    # =====================================================================
    # Execution Limits
    # =====================================================================
    max_response_chars: int = Field(
        default=30000,
        description="Maximum serialized size of a response body returned to the caller",
        alias="ABILITY_MAX_RESPONSE_CHARS",
        gt=1000,
    )
    max_chain_steps: int = Field(
        default=10,
        description="Maximum number of steps accepted in a single ability chain",
        alias="ABILITY_MAX_CHAIN_STEPS",
        ge=1,
        le=100,
    )

    # =====================================================================
    # Logging
    # =====================================================================
    log_level: str = Field(
        default="INFO",
        description="Ability engine logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        alias="ABILITY_ENGINE_LOG_LEVEL",
    )


def load_settings() -> EngineSettings:
    """Load settings from the environment; fails if ABILITY_REQUEST_TIMEOUT is unset."""
    return EngineSettings()  # type: ignore[call-arg]
