# ControlTrack - IT Control Testing Workflow Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Configuration management using Pydantic Settings."""

from beartype import beartype
from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class WorkflowSettings(BaseSettings):
    """Workflow engine settings with immutable configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CONTROLTRACK_",
        env_file=None,
        env_file_encoding="utf-8",
        frozen=True,
        validate_default=True,
        extra="forbid",
    )

    # Audit log persistence
    audit_write_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for a single audit append before giving up",
    )
    audit_retry_base_delay_seconds: float = Field(
        default=0.05,
        ge=0.0,
        le=10.0,
        description="Initial backoff delay between audit append attempts",
    )
    audit_retry_max_delay_seconds: float = Field(
        default=1.0,
        ge=0.0,
        le=60.0,
        description="Upper bound for the audit append backoff delay",
    )

    # Deadlines and escalation
    escalation_schedule_hours: list[int] = Field(
        default_factory=lambda: [24, 72, 168],
        min_length=1,
        description="Hours after going overdue at which each escalation tier fires",
    )
    blocking_grace_hours: int = Field(
        default=48,
        ge=0,
        description="Hours a mandatory request may stay overdue before the assignment is blocked",
    )
    reminder_lead_hours: int = Field(
        default=48,
        ge=0,
        description="Send a reminder when an open request is due within this window",
    )
    sweep_interval_seconds: float = Field(
        default=300.0,
        gt=0.0,
        description="Interval between due-date sweeps",
    )

    # Sampling
    default_confidence_level: float = Field(default=0.95, gt=0.0, lt=1.0)
    tolerable_exception_rate: float = Field(default=0.11, gt=0.0, lt=1.0)
    expected_exception_rate: float = Field(default=0.0, ge=0.0, lt=1.0)

    # Conclusion thresholds
    significant_deficiency_threshold: float = Field(
        default=0.20,
        gt=0.0,
        lt=1.0,
        description="Exception rates above this map to significant deficiency",
    )

    # Findings
    follow_up_days: int = Field(default=90, ge=1, le=730)

    # Numbering
    request_number_prefix: str = Field(default="ER", min_length=1, max_length=10)

    # API Configuration
    app_name: str = Field(default="ControlTrack", min_length=1)
    api_host: str = Field(default="127.0.0.1")
    api_port: int = Field(default=8000, ge=1, le=65535)
    api_env: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
    )
    api_cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000"],
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
    )

    @field_validator("escalation_schedule_hours")
    @classmethod
    def validate_escalation_schedule(cls: type["WorkflowSettings"], v: list[int]) -> list[int]:
        """Escalation tiers must fire at strictly increasing, positive offsets."""
        previous = 0
        for hours in v:
            if hours <= previous:
                raise ValueError(
                    f"escalation_schedule_hours must be positive and strictly increasing: {v}"
                )
            previous = hours
        return v

    @field_validator("expected_exception_rate")
    @classmethod
    def validate_expected_rate(
        cls: type["WorkflowSettings"], v: float, info: ValidationInfo
    ) -> float:
        """Expected rate must leave room below the tolerable rate."""
        tolerable = info.data.get("tolerable_exception_rate")
        if tolerable is not None and v >= tolerable:
            raise ValueError(
                f"expected_exception_rate ({v}) must be < tolerable_exception_rate ({tolerable})"
            )
        return v

    @field_validator("api_cors_origins")
    @classmethod
    def validate_cors_origins(cls: type["WorkflowSettings"], v: list[str]) -> list[str]:
        """Validate CORS origins are proper URLs."""
        for origin in v:
            if not origin.startswith(("http://", "https://")):
                raise ValueError(f"Invalid CORS origin: {origin}")
        return v

    @property
    @beartype
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.api_env == "production"

    @property
    @beartype
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.api_env == "development"


_settings: WorkflowSettings | None = None


@beartype
def get_settings() -> WorkflowSettings:
    """Get cached settings instance."""
    global _settings
    if _settings is None:
        _settings = WorkflowSettings()
    return _settings


@beartype
def clear_settings_cache() -> None:
    """Clear settings cache (for testing)."""
    global _settings
    _settings = None
