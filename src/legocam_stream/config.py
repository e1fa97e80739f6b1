"""
LegoCamStream Configuration
===========================

This module handles configuration loading for the stream service.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    LEGOCAM_STREAM_URL           -> stream.url
    LEGOCAM_AUTOSTART            -> stream.autostart
    LEGOCAM_CONNECT_TIMEOUT      -> stream.connect_timeout_seconds
    LEGOCAM_MAX_DECODE_FAILURES  -> stream.max_decode_failures
    LEGOCAM_SIGNAL_HEADER        -> capture.signal_header
    LEGOCAM_PORT                 -> server.port
    LEGOCAM_LOG_LEVEL            -> logging.level
    PORT                         -> server.port (Cloud Run)

Example:
    from legocam_stream.config import settings

    print(settings.stream.url)
    print(settings.stream.connect_timeout_seconds)
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


_TRUTHY = {"1", "true", "yes", "on"}


# =============================================================================
# Configuration Models
# =============================================================================

class ServiceConfig(BaseModel):
    """Service identification configuration."""

    name: str = Field(default="legocam-stream", description="Service name")
    version: str = Field(default="v0.1.0", description="Service version")


class StreamConfig(BaseModel):
    """Motion-JPEG source configuration."""

    url: str = Field(
        default="http://192.168.4.1/stream",
        description="HTTP URL of the motion-JPEG endpoint",
    )
    autostart: bool = Field(
        default=False,
        description="Start streaming when the service starts",
    )
    connect_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Connect-phase timeout",
    )
    max_decode_failures: int = Field(
        default=3,
        ge=1,
        description="Consecutive undecodable parts before the stream fails",
    )


class CaptureConfig(BaseModel):
    """Header-signal capture configuration."""

    enabled: bool = Field(default=True, description="Watch headers for capture signals")
    signal_header: str = Field(
        default="X-Button-Pressed",
        description="Header carrying the capture signal",
    )
    signal_value: str = Field(default="1", description="Header value meaning 'pressed'")
    debounce_seconds: float = Field(
        default=0.01,
        ge=0,
        description="Time a signal must be stable before it counts",
    )
    max_frames: int = Field(
        default=0,
        ge=0,
        description="Maximum captured frames kept (0 = unlimited)",
    )


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8080, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for LegoCamStream.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    stream: StreamConfig = Field(default_factory=StreamConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
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


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Stream settings
    if env_url := os.environ.get("LEGOCAM_STREAM_URL"):
        config_data.setdefault("stream", {})["url"] = env_url
    if env_autostart := os.environ.get("LEGOCAM_AUTOSTART"):
        config_data.setdefault("stream", {})["autostart"] = env_autostart.strip().lower() in _TRUTHY
    if env_timeout := os.environ.get("LEGOCAM_CONNECT_TIMEOUT"):
        config_data.setdefault("stream", {})["connect_timeout_seconds"] = float(env_timeout)
    if env_failures := os.environ.get("LEGOCAM_MAX_DECODE_FAILURES"):
        config_data.setdefault("stream", {})["max_decode_failures"] = int(env_failures)

    # Capture settings
    if env_header := os.environ.get("LEGOCAM_SIGNAL_HEADER"):
        config_data.setdefault("capture", {})["signal_header"] = env_header

    # Server settings (Cloud Run uses PORT env var)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("LEGOCAM_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("LEGOCAM_LOG_LEVEL"):
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
