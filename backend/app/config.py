"""Configuration management for Tabflow."""

import logging
import os
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


def load_env_file(env_path: Optional[str] = None) -> Path | None:
    """Load environment file from specified path or search common locations.

    Priority:
    1. Explicitly provided path (CLI flag or TABFLOW_ENV_FILE)
    2. .env.local in current directory
    3. .env in current directory
    4. .env.local in project directory
    5. .env in project directory
    """
    explicit_path = env_path or os.getenv("TABFLOW_ENV_FILE")
    if explicit_path:
        path = Path(explicit_path).expanduser().resolve()
        if path.exists():
            load_dotenv(path)
            return path
        else:
            logger.warning(f"Specified env file not found: {path}")

    cwd = Path.cwd()
    project_dir = Path(__file__).parent.parent.parent

    search_paths = [
        cwd / ".env.local",
        cwd / ".env",
        project_dir / ".env.local",
        project_dir / ".env",
    ]

    for path in search_paths:
        if path.exists():
            load_dotenv(path)
            return path

    load_dotenv()
    return None


# Load env on module import (can be re-called with explicit path)
_loaded_env_path = load_env_file()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={value!r}, using {default}")
        return default


def _env_processing() -> str:
    value = os.getenv("TABFLOW_PROCESSING", "remote").strip().lower()
    if value not in ("remote", "local"):
        logger.warning(f"Unknown TABFLOW_PROCESSING={value!r}, using 'remote'")
        return "remote"
    return value


class ServiceConfig(BaseModel):
    """Configuration for the processing service."""

    api_url: str = Field(
        default_factory=lambda: os.getenv("TABFLOW_API_URL", "http://localhost:5050/api/v1")
    )
    timeout: float = Field(default_factory=lambda: float(_env_int("TABFLOW_TIMEOUT", 120)))
    retry_attempts: int = Field(default_factory=lambda: _env_int("TABFLOW_RETRY_ATTEMPTS", 3))


class AppConfig(BaseModel):
    """Main application configuration."""

    debug: bool = Field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")

    # Env file that was loaded
    env_file: Optional[str] = Field(default_factory=lambda: str(_loaded_env_path) if _loaded_env_path else None)

    # Which processing service runs the steps
    processing: Literal["remote", "local"] = Field(default_factory=_env_processing)

    service: ServiceConfig = Field(default_factory=ServiceConfig)


def get_config() -> AppConfig:
    """Get the application configuration."""
    return AppConfig()


def reload_config(env_path: Optional[str] = None) -> AppConfig:
    """Reload configuration with a new env file path."""
    global _loaded_env_path
    _loaded_env_path = load_env_file(env_path)
    return get_config()
