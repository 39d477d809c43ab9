from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class VoiceConfig(BaseSettings):
    """Voice recognition lifecycle configuration.

    Durations are expressed in seconds.
    """

    language: str = "en_US"
    max_results: int = Field(default=5, ge=1)
    partial_results: bool = True

    silence_duration: float = Field(
        default=1.0,
        gt=0,
        description="Quiet time after the last partial result before the buffered text is acted on.",
    )
    cooldown_period: float = Field(default=1.0, ge=0)

    backoff_base: float = Field(default=1.5, gt=0)
    backoff_factor: float = Field(default=1.5, ge=1.0)
    backoff_exponent_cap: int = Field(default=4, ge=0)
    backoff_max_delay: float = Field(default=10.0, gt=0)
    max_consecutive_errors: int = Field(default=5, ge=1)

    liveness_check_interval: float = Field(default=30.0, gt=0)
    liveness_idle_threshold: float = Field(default=20.0, gt=0)
    liveness_max_retries: int = Field(default=3, ge=0)
    liveness_restart_delay: float = Field(default=1.0, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="VOICE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


class AnalysisConfig(BaseSettings):
    """Analysis backend and queue configuration."""

    server_url: str = "http://localhost:3000"
    batch_size: int = Field(default=5, ge=1)
    batch_delay: float = Field(
        default=2.0,
        ge=0,
        description="Pause before each batch after the first one of a submission.",
    )
    request_timeout: float = Field(default=120.0, gt=0)
    immediate: bool = Field(
        default=False,
        description="Submit every new capture for analysis as soon as it is taken.",
    )
    api_key: Optional[str] = None

    model_config = SettingsConfigDict(
        env_prefix="ANALYSIS_",
        env_file=".env",
        secrets_dir=".secrets",
        case_sensitive=False,
        extra="ignore",
    )


class Settings(BaseSettings):
    """Application settings"""

    app_name: str = "SnapSight Capture Service"
    app_version: str = "1.0.0"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    log_file: str = "logs/app.log"
    voice_log_file: str = "logs/voice.log"
    analysis_log_file: str = "logs/analysis.log"

    # Voice
    voice: VoiceConfig = Field(default_factory=VoiceConfig)

    # Analysis
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)

    # CORS
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance
settings = Settings()
