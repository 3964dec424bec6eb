from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    storage_url: str
    storage_api_key: str
    storage_bucket: str = "applicant-documents"
    max_upload_bytes: int = Field(default=10 * 1024 * 1024, gt=0)

    # Laplacian mean-square response above which a frame counts as sharp.
    # Empirical; tune per camera.
    sharpness_threshold: float = Field(default=100.0, ge=0)
    # Luma at or below this value is treated as document foreground.
    binarize_threshold: int = Field(default=128, ge=0, le=255)
    sample_stride: int = Field(default=4, ge=1)
    min_area_ratio: float = Field(default=0.25, ge=0, le=1)
    min_foreground_samples: int = Field(default=100, ge=0)
    min_fill_percentage: float = Field(default=40.0, ge=0, le=100)

    poll_interval_ms: int = Field(default=500, gt=0)
    jpeg_quality: int = Field(default=95, ge=1, le=100)
    camera_index: int = 0
    preview_width: int | None = Field(default=None, ge=3)
    max_read_failures: int = Field(default=5, ge=1)

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
