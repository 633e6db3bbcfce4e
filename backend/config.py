"""
Configuration management for the bird video backend
"""

import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class Settings:
    """Application settings"""

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./bird_videos.db")

    # Redis
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    REDIS_MAX_CONNECTIONS: int = int(os.getenv("REDIS_MAX_CONNECTIONS", "50"))
    REDIS_SOCKET_TIMEOUT: int = int(os.getenv("REDIS_SOCKET_TIMEOUT", "5"))
    REDIS_SOCKET_CONNECT_TIMEOUT: int = int(os.getenv("REDIS_SOCKET_CONNECT_TIMEOUT", "5"))
    REDIS_RETRY_ON_TIMEOUT: bool = os.getenv("REDIS_RETRY_ON_TIMEOUT", "true").lower() == "true"
    REDIS_HEALTH_CHECK_INTERVAL: int = int(os.getenv("REDIS_HEALTH_CHECK_INTERVAL", "30"))

    # Application
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("API_PORT", "8000"))
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "")

    # API Keys
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
    # Bearer token for streaming/download in production
    WORKER_API_KEY: str = os.getenv("WORKER_API_KEY", "")

    # Gemini / Veo
    GEMINI_API_BASE: str = os.getenv("GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta")
    VEO_MODEL: str = os.getenv("VEO_MODEL", "veo-3.0-generate-001")
    VEO_MAX_POLLING_ATTEMPTS: int = int(os.getenv("VEO_MAX_POLLING_ATTEMPTS", "60"))
    VEO_POLLING_DELAY_SECONDS: float = float(os.getenv("VEO_POLLING_DELAY_SECONDS", "5.0"))
    VEO_START_MAX_RETRIES: int = int(os.getenv("VEO_START_MAX_RETRIES", "3"))
    HTTP_TIMEOUT_SECONDS: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "60.0"))

    # The key the test suites run with; polling never sleeps with it
    TEST_API_KEY: str = "test-api-key"

    # Mock video generation (no upstream calls)
    MOCK_VID_GENS: bool = os.getenv("MOCK_VID_GENS", "false").lower() == "true"
    MOCK_VIDEO_URL: str = os.getenv("MOCK_VIDEO_URL", "https://test-video-url.com/video.mp4")

    # Reconciliation sweep
    POLL_BATCH_SIZE: int = int(os.getenv("POLL_BATCH_SIZE", "20"))
    DOWNLOAD_BATCH_SIZE: int = int(os.getenv("DOWNLOAD_BATCH_SIZE", "10"))
    # 0 disables escalation to failed when a finished operation has no result URL
    RESULT_EXTRACTION_MAX_ATTEMPTS: int = int(os.getenv("RESULT_EXTRACTION_MAX_ATTEMPTS", "5"))
    SWEEP_INTERVAL_SECONDS: float = float(os.getenv("SWEEP_INTERVAL_SECONDS", "60"))
    # Spooled copies stay in memory below this size, then spill to disk
    DOWNLOAD_SPOOL_MAX_BYTES: int = int(os.getenv("DOWNLOAD_SPOOL_MAX_BYTES", str(8 * 1024 * 1024)))

    # Cloudflare R2 (S3-compatible) object storage
    STORAGE_BUCKET: str = os.getenv("STORAGE_BUCKET", "")
    R2_ENDPOINT: str = os.getenv("R2_ENDPOINT", "")
    R2_ACCESS_KEY_ID: str = os.getenv("R2_ACCESS_KEY_ID", "")
    R2_SECRET_ACCESS_KEY: str = os.getenv("R2_SECRET_ACCESS_KEY", "")
    R2_REGION: str = os.getenv("R2_REGION", "auto")
    STREAM_CHUNK_SIZE: int = int(os.getenv("STREAM_CHUNK_SIZE", str(64 * 1024)))

    # Job Queue
    VIDEO_QUEUE_NAME: str = os.getenv("VIDEO_QUEUE_NAME", "video_generation_queue")
    QUEUE_MAX_RETRIES: int = int(os.getenv("QUEUE_MAX_RETRIES", "20"))
    QUEUE_RETRY_BASE_DELAY: float = float(os.getenv("QUEUE_RETRY_BASE_DELAY", "10.0"))
    QUEUE_RETRY_MAX_DELAY: float = float(os.getenv("QUEUE_RETRY_MAX_DELAY", "300.0"))
    QUEUE_RECEIVE_TIMEOUT: int = int(os.getenv("QUEUE_RECEIVE_TIMEOUT", "1"))

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def skip_polling_delay(self) -> bool:
        """Mock and test configurations poll without sleeping between attempts."""
        return self.MOCK_VID_GENS or self.GEMINI_API_KEY == self.TEST_API_KEY

    def validate_storage_config(self) -> None:
        """
        Validate storage and upstream configuration at startup.
        Raises ValueError if production mode lacks required settings.
        """
        if not self.is_production:
            return
        if not self.STORAGE_BUCKET:
            raise ValueError("STORAGE_BUCKET is required when ENVIRONMENT=production")
        if not self.R2_ENDPOINT:
            raise ValueError("R2_ENDPOINT is required when ENVIRONMENT=production")
        if not self.WORKER_API_KEY:
            raise ValueError("WORKER_API_KEY is required when ENVIRONMENT=production")
        if not self.MOCK_VID_GENS and not self.GEMINI_API_KEY:
            raise ValueError("GEMINI_API_KEY is required when ENVIRONMENT=production")


# Global settings instance
settings = Settings()
