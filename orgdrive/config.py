# Filename: orgdrive/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from pathlib import Path
from typing import List, Literal


class Settings(BaseSettings):
    # Core
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    app_name: str = "OrgDrive"
    app_version: str = "0.1.0"

    secret_key: str = Field(..., description="JWT secret key - required")
    access_token_expire_minutes: int = 1440
    jwt_algorithm: str = "HS256"

    database_url: str = "sqlite:///./data/orgdrive.db"

    # physical mirror root and upload staging (also the legacy flat uploads dir)
    storage_path: Path = Path("./storage")
    uploads_path: Path = Path("./uploads")
    max_upload_size_mb: int = 500

    # organization defaults
    default_max_storage_per_user: int = 5 * 1024 * 1024 * 1024
    default_allowed_file_types: List[str] = ["*"]
    default_max_users: int = 100

    recent_documents_limit: int = 10
    blocked_extensions: List[str] = [
        ".exe", ".bat", ".cmd", ".sh", ".ps1", ".vbs",
        ".dll", ".so", ".dylib", ".app", ".msi", ".dmg",
        ".scr", ".com", ".pif", ".js", ".jar", ".bin",
    ]

    cors_allow_origins: str = "*"
    cors_allow_credentials: bool = True
    cors_allow_methods: str = "*"
    cors_allow_headers: str = "*"

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="ORGDRIVE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
