"""
Services module for backend business logic
"""

from .operation_poller import GeminiOperationPoller, OperationStatus
from .video_generator import VeoVideoGenerator, VideoGenerationResult
from .r2_storage import R2StorageService, get_r2_storage_service
from .video_repository import VideoRepository
from .video_poller import VideoPollerService

__all__ = [
    "GeminiOperationPoller",
    "OperationStatus",
    "VeoVideoGenerator",
    "VideoGenerationResult",
    "R2StorageService",
    "get_r2_storage_service",
    "VideoRepository",
    "VideoPollerService",
]
