"""Engine configuration loaded from environment variables."""

from datetime import timedelta
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FrmSettings(BaseSettings):
    """frm settings, read from ``FRM_*`` environment variables or a ``.env`` file.

    Durations accept seconds (``FRM_DRAFT_MAX_AGE=86400``) or ISO 8601
    (``FRM_DRAFT_MAX_AGE=P1D``).
    """

    model_config = SettingsConfigDict(env_prefix="FRM_", env_file=".env", extra="ignore")

    # Storage
    database_path: str = "frm.db"
    storage_timeout: float = Field(default=5.0, gt=0)  # seconds to wait on a locked database

    # Draft reaper; disabled when draft_max_age is unset or zero
    draft_max_age: Optional[timedelta] = None
    reaper_interval: timedelta = timedelta(seconds=60)

    # Short codes
    short_code_length: int = Field(default=6, ge=1)

    # Name suffix appended to copied forms
    copy_name_suffix: str = "(COPY)"

    @field_validator("draft_max_age", "reaper_interval", mode="before")
    @classmethod
    def _seconds(cls, value):
        if isinstance(value, str) and value.strip().replace(".", "", 1).isdigit():
            return float(value)
        return value

    @field_validator("reaper_interval")
    @classmethod
    def _positive_interval(cls, value: timedelta) -> timedelta:
        if value <= timedelta(0):
            raise ValueError("reaper_interval must be positive")
        return value

    @property
    def reaper_enabled(self) -> bool:
        return bool(self.draft_max_age) and self.draft_max_age > timedelta(0)


__all__ = ["FrmSettings"]
