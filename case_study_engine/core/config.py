"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    # Blob storage backend: "memory", "local" or "s3"
    STORAGE_BACKEND: str = "local"
    LOCAL_STORAGE_PATH: str = "./storage"

    # S3 (or S3-compatible) storage
    S3_BUCKET: str = ""
    S3_REGION: str = "us-east-1"
    S3_ENDPOINT_URL: str = ""
    S3_URL_STYLE: str = ""  # "path" or "virtual"
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    S3_CONNECT_TIMEOUT_SECONDS: float = 60.0
    S3_READ_TIMEOUT_SECONDS: float = 120.0
    S3_MAX_ATTEMPTS: int = 3

    # Case study listing cache (seconds)
    CASE_STUDY_CACHE_TTL_SECONDS: float = 300.0

    # Document generation (seconds per document)
    DOCUMENT_GENERATION_TIMEOUT_SECONDS: float = 120.0

    @property
    def storage_backend(self) -> str:
        """Normalized storage backend name."""
        return (self.STORAGE_BACKEND or "local").strip().lower()

    @property
    def is_production(self) -> bool:
        return self.ENV.strip().lower() in ("prod", "production")


settings = Settings()
