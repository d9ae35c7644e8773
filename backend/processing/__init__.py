"""Processing services that run workflow operations."""

from .base import ProcessingError, ProcessingService
from .local import LocalProcessingService
from .registry import SERVICE_NAMES, get_processing_service
from .remote import RemoteProcessingService

__all__ = [
    "ProcessingError",
    "ProcessingService",
    "LocalProcessingService",
    "RemoteProcessingService",
    "SERVICE_NAMES",
    "get_processing_service",
]
