"""
Centralized settings for the spawner.

:class:`SpawnerSettings` is the single, validated, cached source of truth
for AWS connection parameters, orchestration timings and logging. Every
field can be set through ``SPAWNER_*`` environment variables (e.g.
``SPAWNER_AWS_REGION=eu-west-1``) or a ``.env`` file.

Tags:
    configuration, settings, pydantic, caching
"""

from __future__ import annotations

try:
    from pydantic_settings import BaseSettings, SettingsConfigDict
except ImportError as exc:  # pragma: no cover
    raise ImportError(
        "spawner.settings requires pydantic-settings. "
        "Install it with: pip install pydantic-settings"
    ) from exc

from pydantic import Field, field_validator


class SpawnerSettings(BaseSettings):
    """Spawner configuration.

    Order of precedence (highest → lowest):
        1. Keyword arguments
        2. Environment variables (``SPAWNER_POLL_INTERVAL_SECONDS``, etc.)
        3. ``.env`` file
        4. Defaults below
    """

    model_config = SettingsConfigDict(
        env_prefix="SPAWNER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── AWS ──────────────────────────────────────────────────────
    aws_region: str | None = Field(default=None, description="Region; None = boto3 default chain")
    aws_profile: str | None = Field(default=None, description="Named profile from ~/.aws/config")
    ecs_endpoint_url: str | None = Field(default=None, description="ECS endpoint override (LocalStack)")
    ec2_endpoint_url: str | None = Field(default=None, description="EC2 endpoint override (LocalStack)")

    # ── Orchestration ────────────────────────────────────────────
    poll_interval_seconds: float = Field(default=0.5, description="Delay between status polls")
    compensation_timeout_seconds: float = Field(
        default=5.0,
        description="Deadline for the stop issued when a spawn fails after submission",
    )
    service_port: str = Field(default="8080", description="Port worlds accept connections on")

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    @field_validator("poll_interval_seconds", "compensation_timeout_seconds")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError(f"must be positive, got {value}")
        return value

    @field_validator("service_port")
    @classmethod
    def _valid_port(cls, value: str) -> str:
        if not value.isdigit() or not 0 < int(value) < 65536:
            raise ValueError(f"service port must be in 1..65535, got {value!r}")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, SpawnerSettings] = {}


def get_settings(*, _force_reload: bool = False) -> SpawnerSettings:
    """Load, validate, and cache a :class:`SpawnerSettings` instance."""
    if _force_reload or "default" not in _settings_cache:
        _settings_cache["default"] = SpawnerSettings()
    return _settings_cache["default"]


def clear_settings_cache() -> None:
    """Drop the cached settings (tests, config reload)."""
    _settings_cache.clear()
