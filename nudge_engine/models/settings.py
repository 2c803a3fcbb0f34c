"""Nudge thresholds and refresh cadence configuration."""

from pydantic import BaseModel, Field, model_validator


class NudgeSettings(BaseModel):
    """Thresholds supplied by the caller. Threaded explicitly into every rule."""

    enabled: bool = True                    # Master kill switch
    stale_lead_warning_days: int = Field(ge=0, default=5)
    stale_lead_critical_days: int = Field(ge=0, default=10)
    deal_stalled_days: int = Field(ge=0, default=7)

    @model_validator(mode="after")
    def _check_threshold_order(self) -> "NudgeSettings":
        if self.stale_lead_critical_days < self.stale_lead_warning_days:
            raise ValueError(
                "stale_lead_critical_days must be >= stale_lead_warning_days"
            )
        return self


DEFAULT_NUDGE_SETTINGS = NudgeSettings()


class RefreshConfig(BaseModel):
    """Configuration for the Refresh Controller."""

    lead_interval_seconds: float = Field(gt=0, default=60)
    deal_interval_seconds: float = Field(gt=0, default=60)
    capture_interval_seconds: float = Field(gt=0, default=30)
    snooze_prune_interval_seconds: float = Field(gt=0, default=300)
    lead_limit: int = Field(gt=0, default=50)
    deal_limit: int = Field(gt=0, default=50)
    capture_limit: int = Field(gt=0, default=20)
    default_snooze_hours: float = Field(gt=0, default=24)
    dismiss_days: int = Field(gt=0, default=3650)
