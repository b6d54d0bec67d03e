"""
Configuration management using Pydantic Settings.
All environment variables are loaded and validated here.
"""

from typing import List, Literal
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ================================
    # Application Configuration
    # ================================
    APP_NAME: str = "content-indexer"
    APP_ENV: Literal["development", "testing", "staging", "production"] = "development"
    DEBUG: bool = True

    # API Configuration
    API_V1_PREFIX: str = "/api/v1"
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:8000"

    @property
    def allowed_origins_list(self) -> List[str]:
        """Parse comma-separated origins into list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    # ================================
    # Database Configuration
    # ================================
    DATABASE_URL: str = Field(..., description="PostgreSQL connection string (postgresql+asyncpg://...)")
    DB_ECHO: bool = False
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # ================================
    # Celery Configuration
    # ================================
    CELERY_BROKER_URL: str = "redis://redis:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://redis:6379/0"
    CELERY_TASK_SERIALIZER: str = "json"
    CELERY_RESULT_SERIALIZER: str = "json"
    # Celery accept content as comma-separated string
    CELERY_ACCEPT_CONTENT: str = "json"
    CELERY_TIMEZONE: str = "UTC"
    CELERY_ENABLE_UTC: bool = True

    @property
    def celery_accept_content_list(self) -> List[str]:
        """Parse CELERY_ACCEPT_CONTENT into a list."""
        return [item.strip() for item in self.CELERY_ACCEPT_CONTENT.split(",")]

    # ================================
    # Indexing Configuration
    # ================================
    # Kill switch for cost control, checked at the top of every indexing call
    ENABLE_CONTENT_INDEXING: bool = False
    INDEXING_SYNC_THRESHOLD: int = Field(default=10, ge=0)
    INDEXING_SYNC_CONCURRENCY: int = Field(default=10, ge=1)
    INDEXING_TIMEOUT_MS: int = Field(default=5000, gt=0)
    INDEXING_USER_AGENT: str = "Mozilla/5.0 (compatible; ContentIndexer/1.0)"
    INDEXING_MIN_CONTENT_CHARS: int = 200
    INDEXING_BROWSER_FALLBACK_ENABLED: bool = True

    @property
    def fetch_timeout_seconds(self) -> float:
        """Per-URL fetch timeout in seconds (httpx and Playwright units differ)."""
        return self.INDEXING_TIMEOUT_MS / 1000

    # ================================
    # Chunking Configuration
    # ================================
    CHUNK_MAX_TOKENS: int = Field(default=800, gt=0)
    CHUNK_OVERLAP_SENTENCES: int = Field(default=2, ge=0)  # ~50 tokens

    # ================================
    # Embedding Configuration
    # ================================
    # Empty model name means embeddings are not configured
    EMBEDDING_MODEL: str = "google/embeddinggemma-300m"
    EMBEDDING_DIMENSION: int = 768
    EMBEDDING_DEVICE: Literal["cpu", "cuda", "mps"] = "cpu"
    # Prompt names from the model config; ignored when the model does not define them
    EMBEDDING_QUERY_PROMPT: str = "query"
    EMBEDDING_DOCUMENT_PROMPT: str = "document"

    # ================================
    # Search Configuration
    # ================================
    SEARCH_RRF_K: int = Field(default=60, ge=0)
    SEARCH_CANDIDATES_PER_LIST: int = Field(default=50, gt=0)
    SEARCH_DEFAULT_LIMIT: int = 10
    SNIPPET_MAX_LENGTH: int = 200

    # ================================
    # Job Queue Configuration
    # ================================
    QUEUE_NAME: str = "index-content"
    QUEUE_BATCH_SIZE: int = Field(default=5, gt=0)
    QUEUE_RETRY_LIMIT: int = Field(default=3, ge=0)
    # Delay before retry N (5 minutes, 30 minutes, 2 hours)
    QUEUE_RETRY_DELAYS_SECONDS: str = "300,1800,7200"
    QUEUE_ARCHIVE_AFTER_SECONDS: int = 86400
    QUEUE_FAILED_RETENTION_DAYS: int = 7
    QUEUE_JOB_EXPIRE_SECONDS: int = 900
    QUEUE_POLL_INTERVAL_SECONDS: int = 15

    @field_validator("QUEUE_RETRY_DELAYS_SECONDS")
    @classmethod
    def validate_retry_delays(cls, v: str) -> str:
        """Reject empty or non-numeric retry delay lists early."""
        delays = [item.strip() for item in v.split(",") if item.strip()]
        if not delays or not all(item.isdigit() for item in delays):
            raise ValueError("QUEUE_RETRY_DELAYS_SECONDS must be a comma-separated list of seconds")
        return v

    @property
    def queue_retry_delays(self) -> List[int]:
        """Parse QUEUE_RETRY_DELAYS_SECONDS into a list of ints."""
        return [int(item.strip()) for item in self.QUEUE_RETRY_DELAYS_SECONDS.split(",") if item.strip()]

    # ================================
    # Logging Configuration
    # ================================
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    LOG_FORMAT: Literal["json", "text"] = "json"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.APP_ENV == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.APP_ENV == "production"

    @property
    def is_testing(self) -> bool:
        """Check if running under the test suite."""
        return self.APP_ENV == "testing"


# Global settings instance
settings = Settings()
