from typing import Optional, List
from pydantic_settings import BaseSettings
from pydantic import validator
import logging

logger = logging.getLogger(__name__)

class Settings(BaseSettings):
    # API
    PROJECT_NAME: str = "TrailVerse API"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api"

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    # Background jobs / monitoring
    ENABLE_SCHEDULED_TASKS: bool = True
    SESSION_PURGE_INTERVAL_MINUTES: int = 60
    SENTRY_DSN: Optional[str] = None

    # JWT
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440

    # Database
    DATABASE_URL: str = "sqlite:///./trailverse.db"

    # Seeded admin account (optional)
    INITIAL_ADMIN_EMAIL: Optional[str] = None
    INITIAL_ADMIN_NAME: str = "TrailVerse Admin"

    # AI providers (each one optional)
    ANTHROPIC_API_KEY: Optional[str] = None
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_DEFAULT_MODEL: str = "gpt-4"
    PROVIDER_TIMEOUT_SECONDS: float = 30.0
    PROVIDER_MAX_RETRIES: int = 0

    # Fact sources
    OPENWEATHER_API_KEY: Optional[str] = None
    NPS_API_KEY: Optional[str] = None
    OPENWEATHER_FORECAST_URL: str = "https://api.openweathermap.org/data/2.5/forecast"
    NPS_API_BASE_URL: str = "https://developer.nps.gov/api/v1"
    FACTS_TIMEOUT_SECONDS: float = 5.0

    # Anonymous chat gate
    ANONYMOUS_MESSAGE_LIMIT: int = 3
    ANONYMOUS_SESSION_TTL_HOURS: int = 48

    # Daily token budget
    USER_DAILY_TOKEN_LIMIT: int = 5000
    TOKEN_RESET_TIMEZONE: str = "UTC"

    # CORS
    BACKEND_CORS_ORIGINS_STR: Optional[str] = None

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        logger.info(f"Environment: {self.ENVIRONMENT}")

    @validator(
        "ANTHROPIC_API_KEY", "OPENAI_API_KEY", "OPENWEATHER_API_KEY", "NPS_API_KEY",
        "SENTRY_DSN", "INITIAL_ADMIN_EMAIL", pre=True
    )
    def blank_to_none(cls, v):
        # An exported-but-empty variable means "not configured"
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def BACKEND_CORS_ORIGINS(self) -> List[str]:
        if self.BACKEND_CORS_ORIGINS_STR is None or self.BACKEND_CORS_ORIGINS_STR == "":
            return [
                "http://localhost:3000",
                "https://www.nationalparksexplorerusa.com",
                "https://nationalparksexplorerusa.com",
            ]
        if self.BACKEND_CORS_ORIGINS_STR == "*":
            return ["*"]
        return [i.strip() for i in self.BACKEND_CORS_ORIGINS_STR.split(",")]

    class Config:
        case_sensitive = True
        env_file = ".env"

settings = Settings()
