from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Literal, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage Configuration
    store_backend: Literal["sqlite", "supabase"] = "sqlite"
    database_path: str = "salon_data.db"
    supabase_url: Optional[str] = None
    supabase_service_role_key: Optional[str] = None

    # Help Request Configuration
    help_request_timeout_minutes: int = 60
    list_all_limit: int = 100

    # Seconds between in-process timeout sweeps, 0 disables the loop
    sweep_interval_seconds: int = 60

    # Application Configuration
    app_name: str = "Salon Help Desk"
    debug: bool = False
    cors_allow_origins: List[str] = ["*"]

    @model_validator(mode="after")
    def _check_store(self):
        if self.store_backend == "supabase" and not (self.supabase_url and self.supabase_service_role_key):
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set for the supabase backend")
        if self.help_request_timeout_minutes <= 0:
            raise ValueError("HELP_REQUEST_TIMEOUT_MINUTES must be positive")
        return self


# Global settings instance
settings = Settings()
