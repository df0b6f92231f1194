"""Configuration management with YAML and environment variable support."""

from pathlib import Path
from typing import ClassVar, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads configuration from YAML file."""

    def get_field_value(self, field, field_name: str):
        # Not used with prepare method
        pass

    def prepare_field_value(self, field_name: str, field, value, value_is_complex: bool):
        return value

    def __call__(self):
        # Load from config.yaml in current directory
        yaml_path = Path("config.yaml")
        if not yaml_path.exists():
            return {}

        with open(yaml_path) as f:
            data = yaml.safe_load(f) or {}

        return data


class QualityProfile(BaseModel):
    """One adaptive-bitrate rendition target."""

    name: str
    width: int
    height: int
    video_bitrate_kbps: int
    audio_bitrate_kbps: int


DEFAULT_QUALITY_PROFILES = [
    QualityProfile(name="1080p", width=1920, height=1080, video_bitrate_kbps=5000, audio_bitrate_kbps=192),
    QualityProfile(name="720p", width=1280, height=720, video_bitrate_kbps=2500, audio_bitrate_kbps=128),
    QualityProfile(name="480p", width=854, height=480, video_bitrate_kbps=1000, audio_bitrate_kbps=96),
    QualityProfile(name="360p", width=640, height=360, video_bitrate_kbps=600, audio_bitrate_kbps=64),
]


class PipelineConfig(BaseModel):
    """Pipeline execution parameters."""

    transcription_max_attempts: int = 3
    retry_base_delay: float = 2.0
    retry_max_delay: float = 60.0
    retry_jitter: float = 1.0
    worker_concurrency: int = 4
    queue_max_size: int = 1000
    # InProgress rows older than this may be re-claimed after a lost delivery
    stale_claim_seconds: float = 900.0


class ModerationConfig(BaseModel):
    """Content moderation policy."""

    transcript_sample_size: int = Field(default=20, ge=1)
    # When False, classifier errors quarantine the video as "uncertain"
    fail_open: bool = True


class EncodingConfig(BaseModel):
    """Variant fan-out and master playlist settings."""

    quality_profiles: list[QualityProfile] = Field(
        default_factory=lambda: list(DEFAULT_QUALITY_PROFILES)
    )
    claim_master_playlist: bool = False
    master_playlist_max_attempts: int = Field(default=3, ge=1)

    @field_validator("quality_profiles")
    @classmethod
    def require_unique_names(cls, v):
        """Profile names key the variant ledger, so they must be unique."""
        names = [p.name for p in v]
        if len(names) != len(set(names)):
            raise ValueError("quality profile names must be unique")
        return v


class StorageConfig(BaseModel):
    """Storage and database configuration."""

    database_url: str = "sqlite+aiosqlite:///vidstage.db"
    content_root: Path = Path("tmp/content")

    @field_validator("content_root", mode="before")
    @classmethod
    def convert_content_root_to_path(cls, v):
        """Convert string to Path object."""
        if isinstance(v, str):
            return Path(v)
        return v


class ProvidersConfig(BaseModel):
    """Collaborator selection and credentials.

    transcription: "stub" | "openai"
    highlights: "disabled" | "openai"
    search_index: "database" | "memory"
    """

    transcription: str = "stub"
    highlights: str = "disabled"
    search_index: str = "database"
    openai_api_key: Optional[str] = None
    openai_base_url: str = "https://api.openai.com/v1"
    openai_chat_model: str = "gpt-4o-mini"
    openai_transcription_model: str = "whisper-1"
    request_timeout: float = 120.0


class LoggingConfig(BaseModel):
    """Console logging."""

    level: str = "INFO"


class Settings(BaseSettings):
    """Main application settings with YAML and environment variable support.

    Configuration sources (in priority order):
    1. Environment variables (prefix: VIDSTAGE_, delimiter: __)
    2. YAML file (config.yaml)
    3. Field defaults
    """

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_nested_delimiter="__",
        env_prefix="VIDSTAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    moderation: ModerationConfig = Field(default_factory=ModerationConfig)
    encoding: EncodingConfig = Field(default_factory=EncodingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ):
        """Customize settings sources to include YAML configuration.

        Priority order (highest to lowest):
        1. Init settings (explicit overrides, e.g. in tests)
        2. Environment variables
        3. YAML file
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
        )


# Singleton instance
settings = Settings()
