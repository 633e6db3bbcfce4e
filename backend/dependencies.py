"""
FastAPI dependency providers

Each component takes its collaborators explicitly; these providers build them
from the app's shared HTTP client and settings. Tests swap any of them out via
app.dependency_overrides.
"""

import httpx
from fastapi import Depends, Request

from config import settings
from redis_client import VideoQueue, get_video_queue
from services.mock_video_generator import MockOperationPoller, MockVideoGenerator
from services.operation_poller import GeminiOperationPoller
from services.r2_storage import R2StorageService, get_r2_storage_service
from services.video_generator import VeoVideoGenerator
from services.video_poller import VideoPollerService
from services.video_repository import VideoRepository


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_repository() -> VideoRepository:
    return VideoRepository()


def get_storage() -> R2StorageService:
    return get_r2_storage_service()


def get_queue() -> VideoQueue:
    return get_video_queue()


def build_operation_poller(http_client: httpx.AsyncClient):
    """Mock poller when MOCK_VID_GENS is set, Gemini otherwise"""
    if settings.MOCK_VID_GENS:
        return MockOperationPoller()
    return GeminiOperationPoller(http_client, settings.GEMINI_API_KEY)


def build_video_generator(http_client: httpx.AsyncClient, operation_poller):
    if settings.MOCK_VID_GENS:
        return MockVideoGenerator()
    return VeoVideoGenerator(http_client, operation_poller, settings.GEMINI_API_KEY)


def build_poller_service(
    http_client: httpx.AsyncClient,
    repository: VideoRepository,
    storage: R2StorageService,
) -> VideoPollerService:
    """Wire a sweep service; shared by the app, the queue worker and the scheduler"""
    return VideoPollerService(
        repository=repository,
        operation_poller=build_operation_poller(http_client),
        storage=storage,
        http_client=http_client,
        api_key=settings.GEMINI_API_KEY,
    )


def get_operation_poller(http_client: httpx.AsyncClient = Depends(get_http_client)):
    return build_operation_poller(http_client)


def get_video_generator(
    http_client: httpx.AsyncClient = Depends(get_http_client),
    operation_poller=Depends(get_operation_poller),
):
    return build_video_generator(http_client, operation_poller)


def get_poller_service(
    http_client: httpx.AsyncClient = Depends(get_http_client),
    repository: VideoRepository = Depends(get_repository),
    storage: R2StorageService = Depends(get_storage),
) -> VideoPollerService:
    return build_poller_service(http_client, repository, storage)
