"""Settings for the chatguard moderation service."""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class ConfigurationError(RuntimeError):
    """Raised at startup when the configuration cannot run safely."""

    def __init__(self, problems: list[str]) -> None:
        super().__init__("; ".join(problems))
        self.problems = problems


def _env_field(default, *env_names: str):
    if env_names:
        alias = AliasChoices(*env_names) if len(env_names) > 1 else env_names[0]
        return Field(default=default, validation_alias=alias)
    return Field(default=default)


class Settings(BaseSettings):
    environment: str = _env_field("production", "ENV", "APP_ENV", "ENVIRONMENT")
    service_name: str = _env_field("chatguard", "SERVICE_NAME")
    git_commit: str = _env_field("unknown", "GIT_COMMIT", "COMMIT_SHA", "SOURCE_VERSION")

    postgres_url: Optional[str] = _env_field(None, "POSTGRES_URL", "DATABASE_URL")
    postgres_min_pool_size: int = _env_field(1, "POSTGRES_MIN_POOL_SIZE")
    postgres_max_pool_size: int = _env_field(10, "POSTGRES_MAX_POOL_SIZE")

    # URL screening
    url_risk_threshold: int = _env_field(70, "URL_RISK_THRESHOLD")
    url_check_timeout_seconds: float = _env_field(1.5, "URL_CHECK_TIMEOUT")
    virustotal_timeout_seconds: float = _env_field(2.5, "VIRUSTOTAL_TIMEOUT")
    max_urls_per_message: int = _env_field(5, "MAX_URLS_PER_MESSAGE")
    blocked_url_cache_enabled: bool = _env_field(True, "BLOCKED_URL_CACHE_ENABLED")
    blocked_url_writer_queue_size: int = _env_field(1000, "BLOCKED_URL_WRITER_QUEUE_SIZE")
    urlhaus_api_url: str = _env_field("https://urlhaus-api.abuse.ch/v1/url/", "URLHAUS_API")
    virustotal_api_key: Optional[str] = _env_field(None, "VT_API_KEY", "VIRUSTOTAL_API_KEY")
    virustotal_api_url: str = _env_field("https://www.virustotal.com/api/v3", "VIRUSTOTAL_API_URL")
    intel_failure_threshold: int = _env_field(5, "INTEL_FAILURE_THRESHOLD")
    intel_reset_seconds: float = _env_field(30.0, "INTEL_RESET_SECONDS")

    # Data leak prevention
    dlp_enabled: bool = _env_field(True, "DLP_ENABLED")
    dlp_similarity_threshold: float = _env_field(0.75, "DLP_THRESHOLD")
    dlp_prefilter_match_threshold: int = _env_field(1, "DLP_PREFILTER_MATCH_THRESHOLD")
    dlp_max_retries: int = _env_field(0, "DLP_MAX_RETRIES")
    dlp_retry_base_delay_seconds: float = _env_field(0.2, "DLP_BASE_DELAY")
    dlp_timeout_seconds: float = _env_field(1.5, "DLP_TIMEOUT")
    dlp_latency_budget_seconds: float = _env_field(2.0, "DLP_LATENCY_BUDGET")
    dlp_corpus_path: str = _env_field("protected_embeddings.json", "DLP_CORPUS_PATH")
    gemini_api_key: Optional[str] = _env_field(None, "GEMINI_API_KEY")
    gemini_embedding_model: str = _env_field("text-embedding-004", "GEMINI_EMBEDDING_MODEL")
    gemini_api_url: str = _env_field("https://generativelanguage.googleapis.com/v1beta", "GEMINI_API_URL")

    # Observability
    obs_enabled: bool = _env_field(True, "OBS_ENABLED")
    obs_metrics_public: bool = _env_field(False, "OBS_METRICS_PUBLIC")
    obs_log_level: str = _env_field("INFO", "LOG_LEVEL")
    obs_log_sampling_rate_info: float = _env_field(1.0, "LOG_SAMPLING_RATE_INFO")
    obs_admin_token: Optional[str] = _env_field(None, "OBS_ADMIN_TOKEN", "ADMIN_TOKEN")

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment helpers
    def is_prod(self) -> bool:
        return self.environment.lower() in ("prod", "production", "live")

    def dlp_worst_case_seconds(self) -> float:
        """Longest a semantic check can hold a message: every attempt times out."""
        attempts = self.dlp_max_retries + 1
        backoff = sum(self.dlp_retry_base_delay_seconds * (2**attempt) for attempt in range(self.dlp_max_retries))
        return attempts * self.dlp_timeout_seconds + backoff

    @field_validator("url_risk_threshold")
    def _check_risk_threshold(cls, value: int) -> int:  # type: ignore[override]
        if not 0 <= value <= 100:
            raise ValueError("url_risk_threshold must be between 0 and 100")
        return value

    @field_validator("dlp_similarity_threshold", "obs_log_sampling_rate_info")
    def _check_unit_interval(cls, value: float) -> float:  # type: ignore[override]
        if not 0.0 <= value <= 1.0:
            raise ValueError("value must be between 0.0 and 1.0")
        return value

    @field_validator(
        "max_urls_per_message",
        "dlp_prefilter_match_threshold",
        "blocked_url_writer_queue_size",
        "intel_failure_threshold",
    )
    def _check_positive_int(cls, value: int) -> int:  # type: ignore[override]
        if value < 1:
            raise ValueError("value must be at least 1")
        return value

    @field_validator(
        "url_check_timeout_seconds",
        "virustotal_timeout_seconds",
        "dlp_timeout_seconds",
        "dlp_latency_budget_seconds",
    )
    def _check_timeout(cls, value: float) -> float:  # type: ignore[override]
        if value <= 0:
            raise ValueError("timeouts must be positive")
        return value

    @field_validator("dlp_max_retries")
    def _check_retries(cls, value: int) -> int:  # type: ignore[override]
        if value < 0:
            raise ValueError("dlp_max_retries cannot be negative")
        return value

    @field_validator("obs_log_level")
    def _normalise_level(cls, value: str) -> str:  # type: ignore[override]
        return value.upper()


def validate_settings(config: "Settings") -> list[str]:
    """Check cross-field requirements once at startup.

    Production refuses to start with problems; other environments log them
    and keep going so local development works without every credential.
    """
    problems: list[str] = []
    if config.dlp_enabled and not config.gemini_api_key:
        problems.append("GEMINI_API_KEY is required when DLP is enabled")
    if config.dlp_enabled and config.dlp_worst_case_seconds() > config.dlp_latency_budget_seconds:
        problems.append(
            f"DLP retries can hold a message for {config.dlp_worst_case_seconds():.2f}s, "
            f"over DLP_LATENCY_BUDGET={config.dlp_latency_budget_seconds:.2f}s"
        )
    if config.is_prod() and not config.obs_admin_token:
        problems.append("OBS_ADMIN_TOKEN should be set in production")
    if not problems:
        return problems
    if config.is_prod():
        raise ConfigurationError(problems)
    for problem in problems:
        logger.warning("configuration problem: %s", problem)
    return problems


settings = Settings()

