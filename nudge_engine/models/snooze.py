"""Snooze Entry — the only persisted state of the engine."""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def to_epoch_millis(moment: datetime) -> int:
    """Convert a datetime to epoch milliseconds. Naive values are read as UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


def from_epoch_millis(millis: int) -> datetime:
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)


class SnoozeEntry(BaseModel):
    """
    Suppression of one nudge id until an absolute expiry.

    Serialized with the camelCase keys of the persisted layout:
    {"nudgeId": "...", "expiresAt": 1700000000000}
    """

    model_config = ConfigDict(populate_by_name=True)

    nudge_id: str = Field(alias="nudgeId")
    expires_at: int = Field(alias="expiresAt")      # Epoch millis

    def is_active(self, now: datetime) -> bool:
        return to_epoch_millis(now) < self.expires_at

    @property
    def expires_at_datetime(self) -> datetime:
        return from_epoch_millis(self.expires_at)
