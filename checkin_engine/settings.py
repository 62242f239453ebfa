from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CheckinSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CHECKIN_", env_file=".env", extra="ignore")

    max_poll_attempts: int = Field(default=10, ge=1)
    poll_base_delay_seconds: float = Field(default=6.0, ge=0.0)
    poll_delay_increment_seconds: float = Field(default=1.0, ge=0.0)
    email_debounce_seconds: float = Field(default=1.5, ge=0.0)
    upload_failures_before_technical_error: int = Field(default=2, ge=1)
    default_front_type_id: int = 116
    default_back_type_id: int = 117
    default_arrival_hour: int = Field(default=11, ge=0, le=23)
