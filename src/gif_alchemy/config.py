"""
GifAlchemy Configuration
========================

This module handles configuration loading for the GIF editing service.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    GIF_ALCHEMY_API_KEY      -> remote.api_key (falls back to GEMINI_API_KEY, API_KEY)
    GIF_ALCHEMY_MODEL        -> remote.model
    GIF_ALCHEMY_USE_REMOTE   -> remote.enabled
    GIF_ALCHEMY_CONCURRENCY  -> processing.concurrency
    GIF_ALCHEMY_MAX_FRAMES   -> processing.max_frames
    GIF_ALCHEMY_MAX_WIDTH    -> processing.max_width
    GIF_ALCHEMY_PORT         -> server.port
    GIF_ALCHEMY_LOG_LEVEL    -> logging.level
    PORT                     -> server.port (Cloud Run)

Example:
    from gif_alchemy.config import settings

    print(settings.processing.max_width)
    print(settings.remote.is_available)
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from gif_alchemy.models.project import EditConfig


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class AppConfig(BaseModel):
    """Application identification configuration."""

    name: str = Field(default="gif-alchemy", description="Service name")
    version: str = Field(default="v0.1.0", description="Service version")


class ProcessingConfig(BaseModel):
    """Frame pipeline limits and algorithm constants."""

    max_frames: int = Field(
        default=50,
        ge=1,
        description="Frames above this count are strided down",
    )
    max_width: int = Field(
        default=300,
        ge=16,
        description="Frames wider than this are downscaled",
    )
    concurrency: int = Field(
        default=2,
        ge=1,
        le=16,
        description="Frame workers per project run",
    )
    stagger_ms: float = Field(
        default=200.0,
        ge=0,
        description="Per-frame-index delay before each remote call",
    )
    recolor_threshold: float = Field(
        default=60.0,
        gt=0,
        description="RGB distance under which a pixel matches a recolor rule",
    )
    alpha_cutoff: int = Field(
        default=10,
        ge=0,
        le=255,
        description="Pixels with lower alpha are not recolored",
    )
    removal_tolerance: float = Field(
        default=60.0,
        gt=0,
        description="RGB distance under which a pixel is background",
    )
    feather_band: float = Field(
        default=20.0,
        gt=0,
        description="Width of the feathered alpha band past the tolerance",
    )
    chroma_key: str = Field(
        default="#00FF00",
        description="Background color the remote model is asked to produce",
    )


class RemoteConfig(BaseModel):
    """Remote AI image-edit configuration."""

    enabled: bool = Field(default=True, description="Use the remote editor when a key is set")
    api_key: Optional[str] = Field(default=None, description="Gemini API key")
    model: str = Field(
        default="gemini-2.5-flash-image",
        description="Image-editing model name",
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        description="Retries on quota failures",
    )
    base_delay_ms: float = Field(
        default=2000.0,
        ge=0,
        description="Backoff base delay in milliseconds",
    )
    max_jitter_ms: float = Field(
        default=1000.0,
        ge=0,
        description="Maximum random jitter added to each backoff",
    )

    @property
    def is_available(self) -> bool:
        """Remote editing needs both the switch and a key."""
        return self.enabled and bool(self.api_key)


class EncoderConfig(BaseModel):
    """GIF encoder constants."""

    palette_colors: int = Field(
        default=255,
        ge=2,
        le=255,
        description="Colors per frame palette (one index is kept for transparency)",
    )
    loop: int = Field(default=0, ge=0, description="Loop count (0 = forever)")


class ProjectsConfig(BaseModel):
    """Project registry configuration."""

    max_projects: int = Field(default=10, ge=1, description="Maximum open projects")


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8002, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for GifAlchemy.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    app: AppConfig = Field(default_factory=AppConfig)
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)
    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    encoder: EncoderConfig = Field(default_factory=EncoderConfig)
    defaults: EditConfig = Field(default_factory=EditConfig)
    projects: ProjectsConfig = Field(default_factory=ProjectsConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    # Find config file
    if config_path is None:
        if env_path := os.environ.get("GIF_ALCHEMY_CONFIG"):
            config_path = env_path
        else:
            search_paths = [
                Path("config.yaml"),
                Path("config.yml"),
                Path(__file__).parent.parent.parent / "config.yaml",
            ]
            for path in search_paths:
                if path.exists():
                    config_path = str(path)
                    break

    # Load from YAML if exists
    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    # Apply environment variable overrides
    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Remote settings
    for key_var in ("GIF_ALCHEMY_API_KEY", "GEMINI_API_KEY", "API_KEY"):
        if env_key := os.environ.get(key_var):
            config_data.setdefault("remote", {})["api_key"] = env_key
            break
    if env_model := os.environ.get("GIF_ALCHEMY_MODEL"):
        config_data.setdefault("remote", {})["model"] = env_model
    if env_remote := os.environ.get("GIF_ALCHEMY_USE_REMOTE"):
        config_data.setdefault("remote", {})["enabled"] = _parse_bool(env_remote)

    # Processing settings
    if env_conc := os.environ.get("GIF_ALCHEMY_CONCURRENCY"):
        config_data.setdefault("processing", {})["concurrency"] = int(env_conc)
    if env_frames := os.environ.get("GIF_ALCHEMY_MAX_FRAMES"):
        config_data.setdefault("processing", {})["max_frames"] = int(env_frames)
    if env_width := os.environ.get("GIF_ALCHEMY_MAX_WIDTH"):
        config_data.setdefault("processing", {})["max_width"] = int(env_width)

    # Server settings (Cloud Run uses PORT env var)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("GIF_ALCHEMY_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("GIF_ALCHEMY_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
