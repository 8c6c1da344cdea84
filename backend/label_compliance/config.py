"""Application configuration."""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App settings
    app_name: str = "Label Compliance API"
    debug: bool = False

    # CORS - Allow all origins for prototype (restrict in production)
    cors_origins: list[str] = ["*"]

    # Upload limits
    max_upload_size_mb: int = 15
    max_images_per_request: int = 6
    allowed_extensions: set = {"png", "jpg", "jpeg", "webp"}
    min_image_dimension: int = 100
    max_image_dimension: int = 1600  # Downscale before OCR

    # OCR settings
    ocr_lang: str = "en"
    ocr_max_concurrent: int = 1  # CPU-bound, one reader pass at a time
    ocr_timeout_seconds: float = 30.0

    # Rule-based matching
    fuzzy_match_threshold: float = 0.80  # Normalized Levenshtein similarity
    fuzzy_min_length: int = 4
    token_overlap_min_ratio: float = 0.75
    token_min_length: int = 3
    token_min_count: int = 3

    # Field comparison
    abv_tolerance: float = 0.5  # Percentage points
    net_contents_tolerance: float = 0.01  # Relative (1%)
    text_match_threshold: float = 0.80
    health_warning_similarity_threshold: float = 0.90

    # LLM classification (cloud mode)
    openai_api_key: str | None = None
    llm_model: str = "gpt-4.1-mini"
    llm_timeout_seconds: float = 10.0
    llm_max_tokens: int = 2000

    # Whole pipeline budget
    pipeline_timeout_seconds: float = 60.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
