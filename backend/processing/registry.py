"""Processing service selection."""

from typing import Optional

from app.config import AppConfig, get_config
from workflow.retry import RetryConfig

from .base import ProcessingService
from .local import LocalProcessingService
from .remote import RemoteProcessingService


SERVICE_NAMES = ("remote", "local")


def get_processing_service(
    name: Optional[str] = None,
    config: Optional[AppConfig] = None,
) -> ProcessingService:
    """
    Build a processing service.

    Args:
        name: "remote" or "local" (defaults to the configured one)
        config: Application config (defaults to get_config())
    """
    config = config or get_config()
    name = name or config.processing

    if name == "local":
        return LocalProcessingService()

    if name == "remote":
        return RemoteProcessingService(
            api_url=config.service.api_url,
            timeout=config.service.timeout,
            retry=RetryConfig(max_attempts=config.service.retry_attempts),
        )

    raise ValueError(f"Unknown processing service: {name}. Available: {list(SERVICE_NAMES)}")
