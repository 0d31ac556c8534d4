from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from pydantic import field_validator

class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'pos_user'
    POSTGRES_PASSWORD: str = 'pos_pass'
    POSTGRES_DB: str = 'pos_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432
    DATABASE_URL: Optional[str] = None  # Overrides the POSTGRES_* settings when set

    # JWT settings
    APP_SECRET_STRING: str = 'your-super-secret-key-here-change-in-production-2024'
    ALGORITHM: str = 'HS256'
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Reports
    REPORT_MIN_YEAR: int = 2000
    REPORT_MAX_YEAR: int = 2100
    REPORT_SNAPSHOT_ISOLATION: str = 'REPEATABLE READ'

    # Remote signing service
    SIGNING_SERVICE_URL: Optional[str] = None
    SIGNING_API_KEY: Optional[str] = None
    SIGNING_TIMEOUT_SECONDS: float = 10.0

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def signing_enabled(self) -> bool:
        return bool(self.SIGNING_SERVICE_URL)

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

    @field_validator("REPORT_SNAPSHOT_ISOLATION", mode="before")
    @classmethod
    def parse_isolation(cls, v):
        if isinstance(v, str):
            return v.strip().upper().replace("_", " ")
        return v

settings = Settings()
