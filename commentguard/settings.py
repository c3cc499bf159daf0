"""Settings for the comment moderation pipeline."""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PROD_ENVIRONMENTS = ("prod", "production", "live")


def _env_field(default, *env_names: str):
    if env_names:
        alias = AliasChoices(*env_names) if len(env_names) > 1 else env_names[0]
        return Field(default=default, validation_alias=alias)
    return Field(default=default)


class Settings(BaseSettings):
    environment: str = _env_field("production", "ENV", "APP_ENV", "ENVIRONMENT")
    service_name: str = _env_field("commentguard", "SERVICE_NAME")
    git_commit: str = _env_field("unknown", "GIT_COMMIT", "COMMIT_SHA", "SOURCE_VERSION")
    obs_log_level: str = _env_field("INFO", "LOG_LEVEL")
    obs_log_sampling_rate_info: float = _env_field(1.0, "LOG_SAMPLING_RATE_INFO")

    # Content safety classifier
    moderation_classifier_timeout_seconds: float = _env_field(5.0, "MODERATION_CLASSIFIER_TIMEOUT_SECONDS")
    moderation_classifier_max_tokens: int = _env_field(200, "MODERATION_CLASSIFIER_MAX_TOKENS")
    moderation_classifier_temperature: float = _env_field(0.1, "MODERATION_CLASSIFIER_TEMPERATURE")
    moderation_classifier_model: str = _env_field("@cf/meta/llama-3.2-1b-instruct", "MODERATION_CLASSIFIER_MODEL")
    moderation_classifier_base_url: str = _env_field(
        "https://api.cloudflare.com/client/v4", "MODERATION_CLASSIFIER_BASE_URL"
    )
    moderation_classifier_account_id: Optional[str] = _env_field(None, "MODERATION_CLASSIFIER_ACCOUNT_ID", "CF_ACCOUNT_ID")
    moderation_classifier_api_token: Optional[str] = _env_field(None, "MODERATION_CLASSIFIER_API_TOKEN", "CF_API_TOKEN")
    # Without a classifier, score with keyword heuristics instead of queueing every comment
    moderation_heuristic_fallback: bool = _env_field(True, "MODERATION_HEURISTIC_FALLBACK")

    # Policy files
    moderation_thresholds_path: Optional[str] = _env_field(None, "MODERATION_THRESHOLDS_PATH")
    moderation_rules_path: Optional[str] = _env_field(None, "MODERATION_RULES_PATH")

    # History projections
    moderation_rejection_window_days: int = _env_field(30, "MODERATION_REJECTION_WINDOW_DAYS")
    moderation_recent_contents_limit: int = _env_field(20, "MODERATION_RECENT_CONTENTS_LIMIT")

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        env_nested_delimiter="__",
    )

    @field_validator("obs_log_level", mode="before")
    def _normalise_level(cls, value):  # type: ignore[override]
        if value in (None, ""):
            return "INFO"
        return str(value).strip().upper()

    # Environment helpers
    def is_prod(self) -> bool:
        return self.environment.lower() in PROD_ENVIRONMENTS

    def classifier_configured(self) -> bool:
        return bool(self.moderation_classifier_account_id and self.moderation_classifier_api_token)


settings = Settings()
