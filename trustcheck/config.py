"""
Configuration management for the trustcheck classification pipeline.
Supports OpenAI (cloud), Groq (cloud) and Ollama (local) LLM providers.
"""

import logging
from functools import lru_cache
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # LLM Configuration
    # Provider priority: OpenAI → Groq → Ollama
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-4o-mini-2024-07-18", alias="OPENAI_MODEL")

    groq_api_key: str = Field(default="", alias="GROQ_API_KEY")
    groq_model: str = Field(default="llama-3.3-70b-versatile", alias="GROQ_MODEL")

    use_ollama: bool = Field(default=False, alias="USE_OLLAMA")
    ollama_model: str = Field(default="qwen2.5:14b", alias="OLLAMA_MODEL")
    ollama_base_url: str = Field(default="http://localhost:11434", alias="OLLAMA_BASE_URL")

    mock_mode: bool = Field(default=False, alias="MOCK_MODE")
    # Resend a failed request to the next configured provider (off: failures surface to the caller)
    llm_provider_failover: bool = Field(default=False, alias="LLM_PROVIDER_FAILOVER")

    # ── Content Classifier ──
    # Temperature 0 keeps classification deterministic across runs.
    classifier_temperature: float = Field(default=0.0, alias="CLASSIFIER_TEMPERATURE")
    classifier_timeout_seconds: float = Field(default=120.0, alias="CLASSIFIER_TIMEOUT_SECONDS")

    # Word-overlap thresholds for accepting a model claim.
    # Translated text is paraphrased, so matches are looser than raw text.
    validation_threshold_translated: float = Field(default=0.5, alias="VALIDATION_THRESHOLD_TRANSLATED")
    validation_threshold_untranslated: float = Field(default=0.8, alias="VALIDATION_THRESHOLD_UNTRANSLATED")

    # ── Translation ──
    translation_enabled: bool = Field(default=True, alias="TRANSLATION_ENABLED")
    translation_target_language: str = Field(default="en", alias="TRANSLATION_TARGET_LANGUAGE")
    translation_timeout_seconds: float = Field(default=10.0, alias="TRANSLATION_TIMEOUT_SECONDS")
    translation_url: str = Field(
        default="https://translate.googleapis.com/translate_a/single",
        alias="TRANSLATION_URL",
    )

    # ── Deterministic checks ──
    min_flagged_groups: int = Field(default=2, alias="MIN_FLAGGED_GROUPS")
    min_flagged_friends: int = Field(default=8, alias="MIN_FLAGGED_FRIENDS")
    min_flagged_friend_ratio: float = Field(default=0.5, alias="MIN_FLAGGED_FRIEND_RATIO")

    # ── Tracking Aggregator ──
    min_confirmed_entities_for_flag: int = Field(default=20, alias="MIN_CONFIRMED_ENTITIES_FOR_FLAG")
    # False = a consumed tally whose entity can no longer be fetched is dropped.
    requeue_unresolved_tallies: bool = Field(default=False, alias="REQUEUE_UNRESOLVED_TALLIES")
    # Groups larger than this are not tracked (membership says little about them).
    max_group_members_track: int = Field(default=10000, alias="MAX_GROUP_MEMBERS_TRACK")
    tracking_retention_days: int = Field(default=30, alias="TRACKING_RETENTION_DAYS")

    # ── Popularity Escalation ──
    follower_threshold: int = Field(default=1000, alias="FOLLOWER_THRESHOLD")
    friends_api_url: str = Field(default="https://friends.roblox.com", alias="FRIENDS_API_URL")
    thumbnails_api_url: str = Field(default="https://thumbnails.roblox.com", alias="THUMBNAILS_API_URL")
    http_timeout_seconds: float = Field(default=15.0, alias="HTTP_TIMEOUT_SECONDS")

    # ── Concurrency / caching ──
    max_concurrency: int = Field(default=10, alias="MAX_CONCURRENCY")
    status_cache_ttl_seconds: float = Field(default=300.0, alias="STATUS_CACHE_TTL_SECONDS")

    # Database
    database_url: str = Field(
        default="sqlite:///./trustcheck.db",
        alias="DATABASE_URL"
    )

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True

    def get_llm_config(self) -> dict:
        """Get LLM configuration based on settings.

        Priority: OpenAI → Groq → Ollama
        """
        if self.openai_api_key:
            return {
                "provider": "openai",
                "api_key": self.openai_api_key,
                "model": self.openai_model,
            }
        elif self.groq_api_key:
            return {
                "provider": "groq",
                "api_key": self.groq_api_key,
                "model": self.groq_model,
            }
        else:
            return {
                "provider": "ollama",
                "model": self.ollama_model,
                "base_url": self.ollama_base_url,
            }


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(level: str = "") -> None:
    """Configure root logging for worker processes embedding the pipeline."""
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
