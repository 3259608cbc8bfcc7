from functools import lru_cache
from typing import List, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MEMORIAL_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    environment: str = Field(default="development")
    port: int = Field(default=5000)

    # Storage
    database_path: str = Field(default="memorial.sqlite3")
    upload_folder: str = Field(default="uploads")
    max_upload_size: int = Field(default=500 * 1024 * 1024)  # 500MB

    # Tokens
    jwt_secret: str = Field(default="change-me-in-production")
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=60 * 24 * 7)  # 7 days
    reset_token_expire_minutes: int = Field(default=60)

    # Mail (falls back to logging when host/user/password are missing)
    email_host: Optional[str] = Field(default=None)
    email_port: int = Field(default=587)
    email_user: Optional[str] = Field(default=None)
    email_password: Optional[str] = Field(default=None)
    email_from: str = Field(default="Online Memorial <noreply@example.com>")

    client_url: str = Field(default="http://localhost:5173")
    cors_origins: List[str] = Field(
        default=["http://localhost:5173", "http://127.0.0.1:5173"]
    )

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def mail_configured(self) -> bool:
        return bool(self.email_host and self.email_user and self.email_password)

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
