from pydantic_settings import BaseSettings
from typing import Literal, Optional

# pydantic_settings is not part of the core pydantic package anymore. Since Pydantic v2, the settings functionality has been split out into its own package.
# BaseSettings from pydantic-settings allow values to be pulled from the .env file (by its default), and provide defaults where applicable.


class Settings(BaseSettings):
    # Storage backend: "supabase" for deployments, "memory" for local runs and tests
    STORAGE_BACKEND: Literal["supabase", "memory"] = "supabase"

    # Supabase (required when STORAGE_BACKEND is "supabase")
    SUPABASE_URL: Optional[str] = None
    SUPABASE_KEY: Optional[str] = None

    # Clerk webhook secret
    CLERK_WEBHOOK_SECRET: Optional[str] = None

    # Clerk JWT settings
    CLERK_JWKS_URL: str

    # API Settings
    API_V1_STR: str = "/api/v1"

    # Resend API Key (notifications are only logged when missing)
    RESEND_API_KEY: Optional[str] = None
    NOTIFICATION_EMAIL_FROM: str = "BidBuild <noreply@bidbuild.ae>"
    NOTIFICATION_EMAIL_TO: str = "operations@bidbuild.ae"

    # deadline sweep
    DEADLINE_SWEEP_ENABLED: bool = True
    DEADLINE_SWEEP_INTERVAL_SECONDS: int = 300
    # days an owner has to award after bidding closed before the project expires
    AWARD_WINDOW_DAYS: int = 30

    LOG_LEVEL: str = "INFO"

    class Config:
        # priority handling, the order is:
        # 1. System environment variables (highest priority)
        # 2. .env file (if it exists)
        # 3. Default values in the Settings class (lowest priority)
        env_file = ".env"
        case_sensitive = True


# throughout the project, no matter how many files do "from app.configs.app_settings import settings"
# Settings() initialization only runs once per python process. Everything else uses the cached module.
settings = Settings()
