"""Server configuration via environment variables."""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field, field_validator


class ServerConfig(BaseModel):
    """Runtime configuration resolved from environment."""

    gemini_api_key: str = Field(default="")
    default_model: str = Field(default="gemini-2.5-flash")
    default_temperature: float = Field(default=1.0)
    cache_dir: str = Field(default="")
    retry_max_attempts: int = Field(default=3)
    retry_base_delay: float = Field(default=1.0)
    retry_max_delay: float = Field(default=60.0)
    analysis_timeout_seconds: float = Field(default=600.0)
    seek_timeout_seconds: float = Field(default=15.0)
    scene_min_seconds: float = Field(default=7.0)
    scene_max_seconds: float = Field(default=8.0)
    thumbnail_divisor: int = Field(default=3)
    thumbnail_quality: int = Field(default=70)
    inline_upload_limit_bytes: int = Field(default=20 * 1024 * 1024)
    max_file_bytes: int = Field(default=200 * 1024 * 1024)
    tracing_enabled: bool = Field(default=False)
    mlflow_tracking_uri: str = Field(default="")
    mlflow_experiment_name: str = Field(default="video-storyboard-mcp")

    @field_validator("retry_max_attempts", "thumbnail_divisor", "inline_upload_limit_bytes", "max_file_bytes")
    @classmethod
    def validate_positive_ints(cls, value: int) -> int:
        if value < 1:
            raise ValueError("Configuration values must be >= 1")
        return value

    @field_validator(
        "retry_base_delay",
        "retry_max_delay",
        "analysis_timeout_seconds",
        "seek_timeout_seconds",
        "scene_min_seconds",
        "scene_max_seconds",
    )
    @classmethod
    def validate_positive_floats(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Durations and delays must be > 0")
        return value

    @field_validator("thumbnail_quality")
    @classmethod
    def validate_quality(cls, value: int) -> int:
        if not 1 <= value <= 100:
            raise ValueError("thumbnail_quality must be between 1 and 100")
        return value

    @property
    def thumbnail_dir(self) -> Path:
        """Directory holding extracted scene thumbnails."""
        return Path(self.cache_dir) / "thumbnails"

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Build config from environment variables."""
        cache_default = str(Path.home() / ".cache" / "video-storyboard-mcp")
        return cls(
            gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
            default_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
            default_temperature=float(os.getenv("GEMINI_TEMPERATURE", "1.0")),
            cache_dir=os.getenv("STORYBOARD_CACHE_DIR", cache_default),
            retry_max_attempts=int(os.getenv("GEMINI_RETRY_MAX_ATTEMPTS", "3")),
            retry_base_delay=float(os.getenv("GEMINI_RETRY_BASE_DELAY", "1.0")),
            retry_max_delay=float(os.getenv("GEMINI_RETRY_MAX_DELAY", "60.0")),
            analysis_timeout_seconds=float(os.getenv("STORYBOARD_ANALYSIS_TIMEOUT", "600")),
            seek_timeout_seconds=float(os.getenv("STORYBOARD_SEEK_TIMEOUT", "15")),
            scene_min_seconds=float(os.getenv("STORYBOARD_SCENE_MIN_SECONDS", "7")),
            scene_max_seconds=float(os.getenv("STORYBOARD_SCENE_MAX_SECONDS", "8")),
            thumbnail_divisor=int(os.getenv("STORYBOARD_THUMBNAIL_DIVISOR", "3")),
            thumbnail_quality=int(os.getenv("STORYBOARD_THUMBNAIL_QUALITY", "70")),
            max_file_bytes=int(os.getenv("STORYBOARD_MAX_FILE_MB", "200")) * 1024 * 1024,
            tracing_enabled=_resolve_tracing_enabled(
                os.getenv("GEMINI_TRACING_ENABLED", ""),
                os.getenv("MLFLOW_TRACKING_URI", ""),
            ),
            mlflow_tracking_uri=os.getenv("MLFLOW_TRACKING_URI", ""),
            mlflow_experiment_name=os.getenv("MLFLOW_EXPERIMENT_NAME", "video-storyboard-mcp"),
        )


def _resolve_tracing_enabled(flag_value: str, tracking_uri: str) -> bool:
    """Derive tracing_enabled from env vars.

    - ``GEMINI_TRACING_ENABLED=false`` → always disabled (explicit opt-out).
    - Otherwise enabled when ``MLFLOW_TRACKING_URI`` is non-empty.
    """
    if flag_value.lower() == "false":
        return False
    return bool(tracking_uri)


_config: ServerConfig | None = None


def get_config() -> ServerConfig:
    """Return the global config singleton, creating it on first access.

    Loads ``~/.config/video-storyboard-mcp/.env`` before reading env vars.
    Process environment always takes precedence over the config file.
    """
    global _config
    if _config is None:
        import logging

        from .dotenv import load_dotenv

        injected = load_dotenv()
        if injected:
            logger = logging.getLogger(__name__)
            logger.info(
                "Loaded %d var(s) from config: %s",
                len(injected),
                ", ".join(injected.keys()),
            )
        _config = ServerConfig.from_env()
    return _config


def update_config(**overrides: object) -> ServerConfig:
    """Patch the live config."""
    global _config
    cfg = get_config()
    data = cfg.model_dump()
    data.update({k: v for k, v in overrides.items() if v is not None})
    _config = ServerConfig(**data)
    return _config
