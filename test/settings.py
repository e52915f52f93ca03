"""
Test Configuration Settings.

This module defines the test environment configuration using Pydantic's BaseSettings.
Pydantic automatically loads configuration from the test/.env file via env_file configuration.

Unlike the runtime settings, the request timeout has a default here so unit tests
can build an engine without any environment set up.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from ability_engine.schemas.config import EngineSettings


class TestSettings(EngineSettings):
    """
    Test environment settings model.

    All properties are automatically bound from environment variables and the
    test/.env file. Every URL defaults to a host the offline HTTP guard lets
    through, so nothing leaves the machine.
    """

    __test__ = False

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).parent / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
        populate_by_name=True,
    )

    registry_base_url: str = Field(
        default="http://mock-registry",
        description="Registry URL used by tests (served by httpx.MockTransport)",
        alias="ABILITY_REGISTRY_URL",
    )
    api_key: Optional[str] = Field(
        default="test-api-key",
        description="Bearer token tests expect on registry calls",
        alias="ABILITY_API_KEY",
    )
    request_timeout_seconds: float = Field(
        default=5.0,
        description="Sandbox request timeout for tests",
        alias="ABILITY_REQUEST_TIMEOUT",
        gt=0,
    )


_test_settings_instance: Optional[TestSettings] = None


def get_test_settings() -> TestSettings:
    """
    Get the test settings instance.

    Returns:
        TestSettings: The initialized test settings instance.
    """
    global _test_settings_instance

    if _test_settings_instance is None:
        _test_settings_instance = TestSettings()
    return _test_settings_instance


test_settings = get_test_settings()
