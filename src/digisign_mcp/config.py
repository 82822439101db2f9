from __future__ import annotations

from typing import Literal

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import Credentials


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables.

    The access/secret key pair is required (no defaults); a process serves
    exactly one DigiSign account.
    """

    model_config = SettingsConfigDict(env_prefix="DIGISIGN_", case_sensitive=False)

    access_key: str = Field(..., min_length=1, description="DigiSign API access key")
    secret_key: str = Field(..., min_length=1, description="DigiSign API secret key")
    base_url: AnyHttpUrl = Field("https://api.digisign.org", description="DigiSign API base URL")

    http_timeout_s: float = Field(30.0, ge=1.0, le=300.0, description="HTTP timeout (seconds)")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        "INFO", description="Logging level for the server process"
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        return v.upper() if isinstance(v, str) else v

    def credentials(self) -> Credentials:
        return Credentials(access_key=self.access_key, secret_key=self.secret_key)

    def api_base_url(self) -> str:
        return str(self.base_url).rstrip("/")
