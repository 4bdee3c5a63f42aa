# climate_credit/core/config.py

from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

MAX_REQUEST_TIMEOUT_SECONDS = 30.0


class Settings(BaseSettings):
    PROJECT_NAME: str = "ClimateCredit Risk Engine"

    # A provider counts as configured only when its key is present.
    ANTHROPIC_API_KEY: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("ANTHROPIC_API_KEY", "CLAUDE_API_KEY"),
    )
    GROQ_API_KEY: Optional[str] = None
    GEMINI_API_KEY: Optional[str] = None

    CLAUDE_MODEL: str = "claude-3-haiku-20240307"
    GROQ_MODEL: str = "llama-3.3-70b-versatile"
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GROQ_BASE_URL: str = "https://api.groq.com/openai/v1"

    PRIMARY_PROVIDER: str = "claude"
    FALLBACK_PROVIDER: Optional[str] = "groq"

    REQUEST_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0, le=MAX_REQUEST_TIMEOUT_SECONDS)

    CLIMATE_API_URL: str = "https://api.open-meteo.com/v1/forecast"
    CLIMATE_LIVE_ENABLED: bool = True
    CLIMATE_FORECAST_DAYS: int = Field(default=16, ge=1, le=16)

    # None means the policy file shipped inside the package.
    RISK_POLICY_PATH: Optional[str] = None

    LOG_LEVEL: str = "INFO"

    HOST: str = "0.0.0.0"
    PORT: int = 8000

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)


settings = Settings()
