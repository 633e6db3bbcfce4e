"""
SQLAlchemy database models
"""

import time
from sqlalchemy import Column, String, Integer, BigInteger, ForeignKey, Text
from database import Base


def now_ms() -> int:
    """Current time as epoch milliseconds"""
    return int(time.time() * 1000)


class Prompt(Base):
    """
    Prompt a video was requested from

    Only the columns the video workflow touches; prompt scoring lives elsewhere.
    """
    __tablename__ = "prompts"

    id = Column(String, primary_key=True, index=True)
    prompt = Column(Text, nullable=False)
    created_at = Column(BigInteger, nullable=False, default=now_ms)
    usage_count = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<Prompt(id={self.id}, usage_count={self.usage_count})>"


class VideoRecord(Base):
    """
    One row per requested video

    Tracks the generation operation and where the finished bytes live.
    Status only moves forward: pending -> processing -> completed -> downloaded,
    with failed reachable from any non-terminal status.
    """
    __tablename__ = "videos"

    # Primary key
    id = Column(String, primary_key=True, index=True)  # UUID

    # Request
    prompt_id = Column(String, ForeignKey("prompts.id"), nullable=True, index=True)
    prompt = Column(Text, nullable=True)
    duration = Column(Integer, nullable=False, default=15)  # seconds

    # Generation tracking
    operation_name = Column(String, nullable=True, unique=True)
    status = Column(String, nullable=False, default="pending", index=True)
    extraction_attempts = Column(Integer, nullable=False, default=0)

    # Output
    google_url = Column(Text, nullable=True)  # ephemeral upstream result URL
    r2_key = Column(String, nullable=True)  # durable object key, not a URL
    video_url = Column(String, nullable=True)  # stable internal stream path

    # Error handling
    error = Column(Text, nullable=True)

    # Timestamps (epoch millis)
    created_at = Column(BigInteger, nullable=False, default=now_ms, index=True)
    downloaded_at = Column(BigInteger, nullable=True)

    def __repr__(self):
        return f"<VideoRecord(id={self.id}, status={self.status}, operation={self.operation_name})>"

    @property
    def is_terminal(self) -> bool:
        return self.status in VideoStatus.TERMINAL

    def to_dict(self):
        """Convert video record to dictionary"""
        return {
            "id": self.id,
            "promptId": self.prompt_id,
            "prompt": self.prompt,
            "operationName": self.operation_name,
            "status": self.status,
            "googleUrl": self.google_url,
            "r2Key": self.r2_key,
            "videoUrl": self.video_url,
            "error": self.error,
            "createdAt": self.created_at,
            "downloadedAt": self.downloaded_at,
            "duration": self.duration,
        }


# Video status constants
class VideoStatus:
    """Constants for video status values"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    DOWNLOADED = "downloaded"
    FAILED = "failed"

    IN_FLIGHT = (PENDING, PROCESSING)
    TERMINAL = (DOWNLOADED, FAILED)

    @classmethod
    def all_statuses(cls):
        """Get list of all status values in lifecycle order"""
        return [
            cls.PENDING,
            cls.PROCESSING,
            cls.COMPLETED,
            cls.DOWNLOADED,
            cls.FAILED,
        ]


def stream_path(video_id: str) -> str:
    """Stable internal path clients use instead of the upstream URL"""
    return f"/videos/{video_id}/stream"
