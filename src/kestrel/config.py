from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Kestrel"
    app_env: str = "development"
    app_host: str = "127.0.0.1"
    app_port: int = 8787
    log_level: str = "INFO"

    database_url: str = "sqlite:///./data/kestrel.db"
    data_dir: Path = Path("./data")

    browser_headless: bool = False
    browser_nav_timeout_sec: int = 30
    browser_user_data_dir: Path = Path("./data/browser_profile")
    browser_channel: str = ""

    listings_url: str = "https://www.workatastartup.com/companies"
    company_link_selector: str = "a[href*='/companies/']"
    job_link_selector: str = "a[href*='/jobs/']"
    applied_marker_selector: str = "text=Applied"
    job_description_selector: str = "main"
    cover_letter_selector: str = "textarea"
    max_companies: int = 0

    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model_writer: str = "gpt-5-mini"
    openai_timeout_sec: int = 60

    local_llm_enabled: bool = True
    local_llm_base_url: str = "http://localhost:11434/v1"
    local_llm_api_key: str = "local"
    local_llm_timeout_sec: int = 90

    llm_router_writer_provider: str = "local"
    llm_router_embed_provider: str = "local"

    generation_model: str = "gemma3:4b"
    embedding_model: str = "qwen3-embedding:0.6b"
    embedding_case_sensitive: bool = False

    title_threshold: float = 0.45
    description_threshold: float = 0.45
    title_cache_size: int = 100
    provider_timeout_sec: float = 60.0

    event_history_size: int = 500
    cors_origins: str = "http://127.0.0.1:8787"

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, value: str) -> str:
        allowed = {"development", "staging", "production", "test"}
        if value not in allowed:
            raise ValueError(f"app_env must be one of {sorted(allowed)}")
        return value

    @field_validator("title_threshold", "description_threshold")
    @classmethod
    def validate_threshold(cls, value: float) -> float:
        if value < -1 or value > 1:
            raise ValueError("similarity thresholds must be between -1 and 1")
        return value

    @field_validator("title_cache_size")
    @classmethod
    def validate_cache_size(cls, value: int) -> int:
        if value < 1:
            raise ValueError("title_cache_size must be at least 1")
        return value

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
