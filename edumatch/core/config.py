"""
Configuration Management
Loads settings from environment variables with type validation
"""

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "EduMatch Document Access"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Security
    SECRET_KEY: str = Field(..., min_length=32)
    JWT_ALGORITHM: str = "HS256"

    # CORS
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:8000",
    ]

    # PostgreSQL
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "edumatch"
    POSTGRES_PASSWORD: str = "edumatch_password"
    POSTGRES_DB: str = "edumatch"

    @property
    def POSTGRES_URL(self) -> str:
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # Object storage (MinIO / S3)
    MINIO_ENDPOINT: str = "localhost:9000"
    MINIO_ACCESS_KEY: str = "minioadmin"
    MINIO_SECRET_KEY: str = "minioadmin"
    MINIO_USE_SSL: bool = False
    MINIO_REGION: Optional[str] = None
    STORAGE_BUCKET: str = "edumatch-files"
    # Extra host for virtual-hosted URLs, e.g. "files.edumatch.example"
    STORAGE_PUBLIC_HOST: Optional[str] = None

    # Access control
    ACCESS_CACHE_ENABLED: bool = True
    ACCESS_CACHE_TTL_SECONDS: int = Field(300, ge=1)
    ACCESS_CACHE_MAX_ENTRIES: int = Field(10000, ge=1)
    PUBLIC_KEY_PREFIXES: List[str] = ["public/"]

    # Presigned URLs
    PRESIGNED_URL_DEFAULT_EXPIRY: int = 3600
    PRESIGNED_URL_MAX_EXPIRY: int = 604800
    SENSITIVE_URL_MAX_EXPIRY: int = 3600
    SENSITIVE_KEY_MARKERS: List[str] = ["/documents/", "/private/", "/confidential/"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        valid = ["development", "staging", "production", "test"]
        if v not in valid:
            raise ValueError(f"ENVIRONMENT must be one of {valid}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {valid}")
        return v_upper

    @field_validator("PUBLIC_KEY_PREFIXES")
    @classmethod
    def validate_public_prefixes(cls, v: List[str]) -> List[str]:
        # An empty prefix would make every object public
        if any(not prefix.strip("/") for prefix in v):
            raise ValueError("PUBLIC_KEY_PREFIXES entries must be non-empty")
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "allow"


# Global settings instance
settings = Settings()
