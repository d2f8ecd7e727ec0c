from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
    DATABASE_URL: str = Field(..., description="Database connection string")
    DB_POOL_SIZE: int = Field(default=5, description="Number of pooled connections kept open")
    DB_MAX_OVERFLOW: int = Field(default=10, description="Connections allowed beyond the pool size under load")
    DB_POOL_TIMEOUT: int = Field(default=30, description="Seconds to wait for a pooled connection before giving up")
    DB_CONNECT_TIMEOUT: int = Field(default=5, description="Seconds allowed to establish a new connection")
    DB_STATEMENT_TIMEOUT_MS: int = Field(default=15000, description="Per-statement deadline in milliseconds (PostgreSQL only, 0 disables)")
    DB_ECHO: bool = Field(default=False, description="Log every SQL statement (debugging only)")
    LOG_LEVEL: str = Field(default="INFO", description="Root log level")
    LOG_FORMAT: str = Field(default="default", description="'default' for plain text, 'json' for structured lines")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
