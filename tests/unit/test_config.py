"""Unit tests for workflow settings."""

import pytest
from pydantic import ValidationError

from controltrack.core.config import WorkflowSettings, clear_settings_cache, get_settings


class TestWorkflowSettings:
    """Test settings defaults, validation and environment loading."""

    def test_defaults(self) -> None:
        settings = WorkflowSettings()

        assert settings.audit_write_attempts == 3
        assert settings.escalation_schedule_hours == [24, 72, 168]
        assert settings.blocking_grace_hours == 48
        assert settings.reminder_lead_hours == 48
        assert settings.default_confidence_level == 0.95
        assert settings.tolerable_exception_rate == 0.11
        assert settings.significant_deficiency_threshold == 0.20
        assert settings.follow_up_days == 90
        assert settings.request_number_prefix == "ER"
        assert settings.is_development is True
        assert settings.is_production is False

    def test_settings_are_frozen(self) -> None:
        settings = WorkflowSettings()
        with pytest.raises(ValidationError):
            settings.blocking_grace_hours = 1  # type: ignore[misc]

    @pytest.mark.parametrize("schedule", [[72, 24], [24, 24], [0, 24], []])
    def test_escalation_schedule_must_increase(self, schedule: list[int]) -> None:
        with pytest.raises(ValidationError):
            WorkflowSettings(escalation_schedule_hours=schedule)

    def test_expected_rate_below_tolerable(self) -> None:
        with pytest.raises(ValidationError, match="expected_exception_rate"):
            WorkflowSettings(tolerable_exception_rate=0.05, expected_exception_rate=0.05)

    def test_invalid_cors_origin(self) -> None:
        with pytest.raises(ValidationError, match="Invalid CORS origin"):
            WorkflowSettings(api_cors_origins=["localhost:3000"])

    @pytest.mark.parametrize(
        ("field", "value"),
        [
            ("api_env", "qa"),
            ("log_level", "VERBOSE"),
            ("audit_write_attempts", 0),
            ("default_confidence_level", 1.0),
        ],
    )
    def test_out_of_range_values(self, field: str, value: object) -> None:
        with pytest.raises(ValidationError):
            WorkflowSettings(**{field: value})

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ValidationError):
            WorkflowSettings(grace_hours=12)  # type: ignore[call-arg]

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test values are read from CONTROLTRACK_ prefixed variables."""
        monkeypatch.setenv("CONTROLTRACK_BLOCKING_GRACE_HOURS", "12")
        monkeypatch.setenv("CONTROLTRACK_ESCALATION_SCHEDULE_HOURS", "[12, 36]")
        monkeypatch.setenv("CONTROLTRACK_API_ENV", "production")

        settings = WorkflowSettings()

        assert settings.blocking_grace_hours == 12
        assert settings.escalation_schedule_hours == [12, 36]
        assert settings.is_production is True


class TestSettingsCache:
    """Test the process-wide settings instance."""

    def test_cached_until_cleared(self, monkeypatch: pytest.MonkeyPatch) -> None:
        clear_settings_cache()
        first = get_settings()
        assert get_settings() is first

        monkeypatch.setenv("CONTROLTRACK_FOLLOW_UP_DAYS", "30")
        assert get_settings().follow_up_days == first.follow_up_days

        clear_settings_cache()
        assert get_settings().follow_up_days == 30
        clear_settings_cache()
