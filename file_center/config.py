from __future__ import annotations
from functools import lru_cache
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Inline payloads live inside a single BSON document (16 MiB cap), so the
# threshold has to leave room for the metadata fields next to it.
MAX_FILE_SIZE_THRESHOLD = 16_770_000
DEFAULT_FILE_SIZE_THRESHOLD = 262_144
DEFAULT_TEMPORARY_FILE_LIFETIME = 60.0
DEFAULT_MIME_TYPE = "application/octet-stream"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    mongodb_uri: str = Field("mongodb://127.0.0.1:27017", alias="MONGODB_URI")
    mongodb_db: str = Field("file_center", alias="MONGODB_DB")
    mongodb_timeout_ms: int = Field(5000, alias="MONGODB_TIMEOUT_MS")

    file_size_threshold: int = Field(DEFAULT_FILE_SIZE_THRESHOLD, alias="FILE_SIZE_THRESHOLD")
    # seconds
    temporary_file_lifetime: float = Field(
        DEFAULT_TEMPORARY_FILE_LIFETIME, alias="TEMPORARY_FILE_LIFETIME", gt=0
    )
    # Required; rotating it invalidates every token issued before.
    codec_key: str = Field(..., alias="FILE_CENTER_CODEC_KEY", min_length=1)

    # Defaults to the threshold when unset.
    chunk_size: Optional[int] = Field(None, alias="CHUNK_SIZE", gt=0)
    max_file_size: Optional[int] = Field(None, alias="MAX_FILE_SIZE", gt=0)

    @model_validator(mode="after")
    def _check_threshold(self) -> "Settings":
        if not 0 < self.file_size_threshold <= MAX_FILE_SIZE_THRESHOLD:
            raise ValueError(
                f"FILE_SIZE_THRESHOLD must be between 1 and {MAX_FILE_SIZE_THRESHOLD}"
            )
        if self.chunk_size is not None and self.chunk_size > MAX_FILE_SIZE_THRESHOLD:
            raise ValueError(f"CHUNK_SIZE must not exceed {MAX_FILE_SIZE_THRESHOLD}")
        return self

    @property
    def effective_chunk_size(self) -> int:
        return self.chunk_size or self.file_size_threshold


@lru_cache
def get_settings() -> Settings:
    """
    Load settings once per process. Fails fast (pydantic ValidationError)
    when FILE_CENTER_CODEC_KEY is missing.
    """
    return Settings()
