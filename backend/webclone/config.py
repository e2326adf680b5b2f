from pydantic_settings import BaseSettings
from functools import lru_cache
import os

# Look for .env in the repo root (two levels up from backend/webclone/)
_ENV_PATH = os.path.join(os.path.dirname(__file__), "..", "..", ".env")


class Settings(BaseSettings):
    openai_api_key: str = ""
    anthropic_api_key: str = ""

    # Model provider
    llm_provider: str = "openai"  # "openai" or "anthropic"
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o"
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    llm_timeout: float = 120.0  # seconds
    llm_temperature: float = 0.2
    llm_max_tokens: int = 2048
    layout_item_limit: int = 5
    max_image_dimension: int = 7000

    # Capture defaults
    page_load_timeout: int = 30000  # milliseconds
    viewport_width: int = 1280
    viewport_height: int = 900
    stylesheet_timeout: float = 15.0  # seconds
    max_scroll_steps: int = 200

    # Service
    cors_origins: list[str] = ["*"]
    log_level: str = "INFO"
    debug: bool = False

    class Config:
        # On a deployed host env vars are injected directly, .env is optional
        env_file = _ENV_PATH if os.path.exists(_ENV_PATH) else None
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings():
    return Settings()
