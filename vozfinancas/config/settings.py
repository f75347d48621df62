"""
Configuration Management for VozFinanças

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Each external collaborator (the live assistant, the sound device, the local
store, the companion backend) gets its own settings class with its own env
prefix, so a missing Gemini key never prevents the REST server from starting.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GeminiSettings(BaseSettings):
    """Gemini Live assistant configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    live_model: str = Field(
        default="gemini-2.5-flash-native-audio-preview-09-2025",
        description="Native-audio model used for the live session"
    )
    voice_name: str = Field(
        default="Zephyr",
        description="Prebuilt voice for synthesized replies"
    )
    connect_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="How many times to try opening a live session"
    )


class AudioSettings(BaseSettings):
    """Microphone capture, silence detection and playback configuration."""

    model_config = SettingsConfigDict(
        env_prefix="AUDIO_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    input_sample_rate: int = Field(
        default=16000,
        description="Sample rate sent to the assistant (Hz)"
    )
    output_sample_rate: int = Field(
        default=24000,
        description="Sample rate of synthesized replies (Hz)"
    )
    block_size: int = Field(
        default=4096,
        ge=256,
        description="Samples per capture block"
    )
    fft_size: int = Field(
        default=256,
        description="FFT window used by the silence analyser"
    )
    smoothing: float = Field(
        default=0.8,
        ge=0.0,
        lt=1.0,
        description="Time smoothing applied between analyser frames"
    )
    silence_threshold: float = Field(
        default=15.0,
        ge=0.0,
        le=255.0,
        description="Average spectral energy below which input counts as silence"
    )
    silence_timeout_seconds: float = Field(
        default=3.0,
        gt=0.0,
        description="Continuous silence that ends a recording session"
    )
    input_device: Optional[str] = Field(
        default=None,
        description="Input device name or index (system default when unset)"
    )

    @field_validator("fft_size")
    @classmethod
    def validate_fft_size(cls, v: int) -> int:
        """FFT size must be a power of two, like a browser AnalyserNode."""
        if v < 32 or v & (v - 1):
            raise ValueError("fft_size must be a power of two >= 32")
        return v


class StorageSettings(BaseSettings):
    """Local key-value store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    local_path: Path = Field(
        default=Path("data/vozfinancas.json"),
        description="JSON file backing the local key-value store"
    )
    expenses_key: str = Field(
        default="vozfinancas_expenses",
        description="Namespace holding the expense collection"
    )
    password_key: str = Field(
        default="vozfinancas_password",
        description="Namespace holding the lock password"
    )


class RemoteSyncSettings(BaseSettings):
    """Best-effort replication to the companion REST backend."""

    model_config = SettingsConfigDict(
        env_prefix="REMOTE_SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    enabled: bool = Field(
        default=True,
        description="Mirror local mutations to the backend"
    )
    base_url: str = Field(
        default="http://localhost:3000/api",
        description="Base URL of the companion backend API"
    )
    timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        description="Per-request timeout"
    )


class ServerSettings(BaseSettings):
    """Companion REST backend configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SERVER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    database_url: str = Field(
        default="sqlite:///./expenses.db",
        description="SQLAlchemy database URL"
    )
    host: str = Field(
        default="0.0.0.0",
        description="Interface to bind"
    )
    port: int = Field(
        default=3000,
        ge=1,
        le=65535,
        description="Port to listen on"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode (console logs instead of JSON)"
    )

    min_password_length: int = Field(
        default=4,
        ge=1,
        description="Minimum length of the lock password"
    )
    timezone: str = Field(
        default="UTC",
        description="Timezone that defines 'today' for the daily total"
    )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @property
    def tzinfo(self) -> ZoneInfo:
        """Get the configured timezone as a tzinfo."""
        return ZoneInfo(self.timezone)


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def audio(self) -> AudioSettings:
        return AudioSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def remote_sync(self) -> RemoteSyncSettings:
        return RemoteSyncSettings()

    @property
    def server(self) -> ServerSettings:
        return ServerSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus a
    "<setting_name>_error" entry for every failing section.
    Useful for startup checks.
    """
    results = {}
    settings = get_settings()

    for name in ("gemini", "audio", "storage", "remote_sync", "server", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
