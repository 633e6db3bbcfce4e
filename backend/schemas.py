"""
Pydantic schemas for request/response validation
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class GenerateVideoRequest(BaseModel):
    """Request model for video generation"""
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "prompt": "a baby owl learning to fly",
                "promptId": "550e8400-e29b-41d4-a716-446655440000",
                "duration": 15
            }
        }
    )

    prompt: str = Field(..., min_length=1, max_length=500, description="What the bird video should show")
    prompt_id: Optional[str] = Field(None, alias="promptId", description="Stored prompt this request came from")
    duration: int = Field(default=15, ge=1, le=60, description="Requested clip length in seconds")


class GenerateVideoResponse(BaseModel):
    """Response model for video generation endpoint"""
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "success": True,
                "videoId": "550e8400-e29b-41d4-a716-446655440000",
                "status": "queued",
                "message": "Video generation started"
            }
        }
    )

    success: bool = True
    video_id: str = Field(..., alias="videoId", description="Unique video identifier")
    status: str = Field(default="queued", description="Initial request status")
    message: str = Field(default="Video generation started")


class VideoResponse(BaseModel):
    """A video record as returned by the API"""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    prompt_id: Optional[str] = Field(None, alias="promptId")
    prompt: Optional[str] = None
    operation_name: Optional[str] = Field(None, alias="operationName")
    status: str
    google_url: Optional[str] = Field(None, alias="googleUrl")
    r2_key: Optional[str] = Field(None, alias="r2Key")
    video_url: Optional[str] = Field(None, alias="videoUrl")
    error: Optional[str] = None
    created_at: int = Field(..., alias="createdAt")
    downloaded_at: Optional[int] = Field(None, alias="downloadedAt")
    duration: int = 15


class PollVideosResponse(BaseModel):
    """Response model for the manual sweep trigger"""
    success: bool = True
    processed: int
    message: str


class VideoQueueMessage(BaseModel):
    """Body of a video generation queue message"""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1)
    prompt_id: Optional[str] = Field(None, alias="promptId")
    prompt: Optional[str] = None
    operation_name: Optional[str] = Field(None, alias="operationName")
    timestamp: Optional[int] = None


class ErrorResponse(BaseModel):
    """Standard error response"""
    success: bool = False
    error: str
