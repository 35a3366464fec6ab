from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    PROJECT_NAME: str = "Request Desk"
    API_PREFIX: str = "/api"
    SECRET_KEY: str = "secret"
    DATABASE_URL: str = "sqlite+aiosqlite:///./database/requests.db"
    BACKEND_CORS_ORIGINS: list[str] = ["*"]
    ENVIRONMENT: str = "development"
    DB_QUERY_TIMEOUT_SECONDS: float = 5.0
    DB_AUTO_INIT_ON_STARTUP: bool | None = None
    DEFAULT_REQUEST_USER_ID: int = 2
    SEED_DEFAULT_ADMIN: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore"
    )

    @model_validator(mode='after')
    def normalize_database_url(self):
        # The primary backend talks to SQLite through the async engine only.
        if self.DATABASE_URL.startswith("sqlite://"):
            self.DATABASE_URL = self.DATABASE_URL.replace("sqlite://", "sqlite+aiosqlite://", 1)

        # Default startup behavior:
        # - development/test: create schema, guard columns, seed the admin
        # - production: only probe connectivity
        if self.DB_AUTO_INIT_ON_STARTUP is None:
            self.DB_AUTO_INIT_ON_STARTUP = self.ENVIRONMENT != "production"

        return self

settings = Settings()
