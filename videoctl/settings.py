"""Environment configuration."""

import os
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import DEFAULT_MAX_POLL_ATTEMPTS, DEFAULT_POLL_INTERVAL

R2_VARS = (
    "R2_ACCOUNT_ID",
    "R2_ACCESS_KEY_ID",
    "R2_SECRET_ACCESS_KEY",
    "R2_BUCKET_NAME",
    "R2_PUBLIC_URL",
)


class Settings(BaseSettings):
    """Settings read from the process environment and an optional .env file."""
    xai_api_key: Optional[str] = None
    output_dir: Optional[str] = None
    debug: bool = False
    video_poll_interval: int = DEFAULT_POLL_INTERVAL  # ms
    video_max_poll_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS

    r2_account_id: Optional[str] = None
    r2_access_key_id: Optional[str] = None
    r2_secret_access_key: Optional[str] = None
    r2_bucket_name: Optional[str] = None
    r2_public_url: Optional[str] = None

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def default_output_dir(self) -> str:
        return self.output_dir or os.getcwd()

    @property
    def r2_configured(self) -> bool:
        return not self.missing_r2_vars()

    def missing_r2_vars(self) -> List[str]:
        """Names of the R2 variables that are not set."""
        return [name for name in R2_VARS if not getattr(self, name.lower())]
