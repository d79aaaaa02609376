"""
Configuration management using Pydantic Settings

This module provides centralized configuration for the service using
environment variables (and an optional ``.env`` file) validated by Pydantic.
"""

from functools import lru_cache
from typing import Annotated, Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra fields in .env file
    )

    # Application Info
    app_name: str = Field(default="PixelCrop")
    app_version: str = Field(default="1.0.0")
    environment: str = Field(default="development")
    debug: bool = Field(default=False)

    # Server Configuration
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    reload: bool = Field(default=False)

    # API Configuration
    api_v1_prefix: str = Field(default="/api/v1")
    docs_url: Optional[str] = Field(default="/docs")
    redoc_url: Optional[str] = Field(default="/redoc")

    # CORS Configuration
    allowed_origins: Annotated[List[str], NoDecode] = Field(default=["*"])
    allowed_methods: Annotated[List[str], NoDecode] = Field(
        default=["GET", "POST", "PUT", "DELETE", "OPTIONS"]
    )
    allowed_headers: Annotated[List[str], NoDecode] = Field(default=["*"])
    allow_credentials: bool = Field(default=True)

    # Upload / export Configuration
    max_image_size_mb: int = Field(default=10)
    jpeg_quality: int = Field(default=100, ge=0, le=100)
    pdf_filename: str = Field(default="cropped-image.pdf")
    max_sessions: int = Field(default=100, ge=1)

    # Storage Configuration
    storage_backend: str = Field(default="local")
    storage_dir: str = Field(default="/tmp/pixelcrop/storage")
    public_base_url: str = Field(default="http://localhost:8000")
    upload_url_ttl_seconds: int = Field(default=3600)
    remote_storage_url: Optional[str] = Field(default=None)
    storage_fn_generate_upload_url: str = Field(default="images:generateUploadUrl")
    storage_fn_save_image: str = Field(default="images:saveImage")
    storage_fn_list_images: str = Field(default="images:listImages")
    storage_fn_get_url: str = Field(default="images:getUrl")
    storage_timeout: int = Field(default=30)

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default=None)
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    log_max_size_mb: int = Field(default=10)
    log_backup_count: int = Field(default=5)

    @field_validator("allowed_origins", "allowed_methods", "allowed_headers", mode="before")
    @classmethod
    def parse_comma_separated(cls, v):
        """Parse comma-separated lists"""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {', '.join(allowed)}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level"""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in allowed:
            raise ValueError(f"Log level must be one of: {', '.join(allowed)}")
        return v

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, v):
        """Validate storage backend name"""
        allowed = ["local", "remote"]
        v = v.lower()
        if v not in allowed:
            raise ValueError(f"Storage backend must be one of: {', '.join(allowed)}")
        return v

    @property
    def max_image_size_bytes(self) -> int:
        """Calculate max image size in bytes"""
        return self.max_image_size_mb * 1024 * 1024

    @property
    def storage_functions(self) -> Dict[str, str]:
        """Remote function paths keyed by operation"""
        return {
            "generate_upload_url": self.storage_fn_generate_upload_url,
            "save_image": self.storage_fn_save_image,
            "list_images": self.storage_fn_list_images,
            "get_url": self.storage_fn_get_url,
        }

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development"""
        return self.environment == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance

    Returns:
        Settings: Application settings singleton
    """
    return Settings()


# Helper functions for common settings access
def get_log_config(settings: Optional[Settings] = None) -> dict:
    """Get logging configuration dict"""
    settings = settings or get_settings()
    return {
        "level": settings.log_level,
        "format": settings.log_format,
        "file": settings.log_file,
        "max_size": settings.log_max_size_mb * 1024 * 1024,
        "backup_count": settings.log_backup_count,
    }


def get_cors_config(settings: Optional[Settings] = None) -> dict:
    """Get CORS configuration dict"""
    settings = settings or get_settings()
    return {
        "allow_origins": settings.allowed_origins,
        "allow_methods": settings.allowed_methods,
        "allow_headers": settings.allowed_headers,
        "allow_credentials": settings.allow_credentials,
    }


def get_export_config(settings: Optional[Settings] = None) -> dict:
    """Get export pipeline configuration dict"""
    settings = settings or get_settings()
    return {
        "max_size_mb": settings.max_image_size_mb,
        "jpeg_quality": settings.jpeg_quality,
        "pdf_filename": settings.pdf_filename,
        "max_sessions": settings.max_sessions,
    }
