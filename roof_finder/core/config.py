"""
Roof Finder Application Configuration
Loads settings from .env file using Pydantic v2 with BaseSettings
"""
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Literal
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # ==================== Project Info ====================
    PROJECT_NAME: str = "Roof Finder API"
    PROJECT_DESCRIPTION: str = "Map-driven roof lead capture and conversion"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api"

    # ==================== Database ====================
    DATABASE_URL: str = "sqlite:///roof_finder_local.db"

    # ==================== Security & Authentication ====================
    SECRET_KEY: str = "your-super-secret-key-change-this-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 10080  # 7 days

    # ==================== CORS & Frontend ====================
    FRONTEND_URL: str = "http://localhost:3000"
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:3001",
    ]
    API_BASE_URL: str = "http://localhost:8000"

    # ==================== Image Storage ====================
    # "local" keeps files on disk, "supabase" uses a private storage bucket
    STORAGE_BACKEND: Literal["local", "supabase"] = "local"
    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""
    IMAGE_BUCKET: str = "roof-lead-images"
    LOCAL_STORAGE_DIR: str = "storage"
    SIGNED_URL_EXPIRY_SECONDS: int = 3600
    MAX_IMAGE_SIZE_MB: int = 10

    # ==================== Map & Query Behaviour ====================
    SEARCH_DEBOUNCE_MS: int = 300
    POLYGON_SNAP_TOLERANCE: float = 0.001  # degrees
    DEFAULT_PAGE_SIZE: int = 50
    MAX_PAGE_SIZE: int = 500

    # ==================== Features ====================
    DEBUG: bool = False
    TESTING: bool = False
    LOG_LEVEL: str = "INFO"

    # ==================== Configuration Loading ====================
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
        validate_default=True,
    )

    @model_validator(mode="after")
    def check_page_sizes(self) -> "Settings":
        if self.DEFAULT_PAGE_SIZE > self.MAX_PAGE_SIZE:
            raise ValueError("DEFAULT_PAGE_SIZE cannot exceed MAX_PAGE_SIZE")
        return self

    # ==================== Derived Values ====================
    @property
    def supabase_configured(self) -> bool:
        """Check if Supabase storage credentials are present"""
        return bool(self.SUPABASE_URL and self.SUPABASE_KEY)

    @property
    def max_image_size_bytes(self) -> int:
        return self.MAX_IMAGE_SIZE_MB * 1024 * 1024

    @property
    def search_debounce_seconds(self) -> float:
        return self.SEARCH_DEBOUNCE_MS / 1000.0


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()


def get_cors_origins() -> List[str]:
    """Configured origins plus the map frontend"""
    return [origin.rstrip("/") for origin in settings.ALLOWED_ORIGINS if origin]
