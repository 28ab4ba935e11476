from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Runtime configuration sourced from environment variables."""

    database_url: str = Field(
        default="sqlite:///./meditranslate.db",
        description="SQLAlchemy URL of the conversation store.",
    )
    translation_backend: str = Field(
        default="openai",
        description="Translation engine to use (openai/nllb).",
    )
    openai_api_key: Optional[str] = Field(
        default=None,
        description="Credential for the OpenAI translation and summarisation engines.",
    )
    translation_model: str = Field(
        default="gpt-4o-mini", description="Chat model used for translation."
    )
    summary_model: str = Field(
        default="gpt-4o-mini", description="Chat model used for clinical summaries."
    )
    nllb_model: str = Field(
        default="facebook/nllb-200-distilled-600M",
        description="Seq2Seq model used by the local NLLB translation engine.",
    )
    summary_temperature: float = Field(
        default=0.3, description="Sampling temperature for summary generation."
    )
    summary_max_tokens: int = Field(
        default=1000, description="Token budget for a summary completion."
    )
    translation_timeout: float = Field(
        default=30.0, description="Seconds allowed for one translation call."
    )
    summarization_timeout: float = Field(
        default=60.0, description="Seconds allowed for one summary completion."
    )
    upload_timeout: float = Field(
        default=60.0, description="Seconds allowed for one audio upload."
    )
    blob_backend: str = Field(
        default="local", description="Audio storage backend (local/s3)."
    )
    audio_dir: str = Field(
        default="./audio", description="Directory used by the local audio store."
    )
    audio_base_url: str = Field(
        default="/audio", description="URL prefix under which local audio is served."
    )
    s3_bucket: Optional[str] = Field(default=None, description="Bucket for audio recordings.")
    aws_region: str = Field(default="us-east-1", description="Region of the audio bucket.")
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    s3_public_base_url: Optional[str] = Field(
        default=None,
        description="Public URL prefix for stored objects (defaults to the bucket endpoint).",
    )
    max_audio_bytes: int = Field(
        default=10 * 1024 * 1024, description="Largest accepted audio upload."
    )
    retry_attempts: int = Field(
        default=3, description="Attempts made for retryable remote failures."
    )
    retry_base_delay: float = Field(
        default=1.0, description="First backoff delay in seconds; doubles per attempt."
    )
    cors_origins: tuple[str, ...] = Field(
        default=("http://localhost:5173",),
        description="Origins allowed to call the API from a browser.",
    )

    class Config:
        env_prefix = "MEDITRANSLATE_"
        env_file = ".env"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    """Expose cached settings instance for use across the app."""
    return Settings()
