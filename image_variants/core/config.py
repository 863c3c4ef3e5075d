"""
Application configuration using Pydantic Settings
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    app_name: str = "image-variants"

    # Logging Settings
    log_level: str = "INFO"
    log_format: str = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
    log_date_format: str = "%Y-%m-%d %H:%M:%S"
    log_file: str = ""  # empty = console only
    log_file_max_bytes: int = 5 * 1024 * 1024
    log_file_backup_count: int = 2

    # Upload Settings
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    originals_base_path: str = "/uploads/originals"

    # Variant Generation Settings
    default_quality: int = 80
    default_profile: str = "default"
    variant_max_concurrency: int = 4
    batch_max_concurrency: int = 2

    # Pipeline Step Defaults - UploadOriginalStep
    original_upload_retries: int = 0
    original_upload_retry_backoff: float = 0.5
    original_upload_max_backoff: float = 3.0
    original_upload_jitter: float = 0.1
    original_upload_timeout: float | None = None

    # Storage Settings
    storage_backend: str = "local"  # local | s3 | memory
    local_storage_dir: str = "data/uploads"

    # AWS S3 Settings
    aws_s3_bucket: str = ""
    aws_s3_region: str = "us-east-1"
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    aws_s3_prefix: str = ""  # S3 object key prefix for uploads
    aws_s3_public_urls: bool = False
    """
    AWS S3 configuration for the object storage backend.
    aws_s3_bucket: S3 bucket name
    aws_s3_region: S3 region
    aws_s3_public_urls: return https URLs instead of object keys from upload
    """

    @field_validator("storage_backend")
    @classmethod
    def normalize_backend(cls, v: str) -> str:
        return (v or "local").strip().lower()

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_prefix": "IMAGE_VARIANTS_",
        "extra": "ignore",
    }


# Global settings instance
settings = Settings()
