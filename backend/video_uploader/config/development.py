"""
Development environment configuration
"""

from video_uploader.config.base import Settings


class DevelopmentSettings(Settings):
    """Development-specific settings"""

    DEBUG: bool = True
    LOG_LEVEL: str = "DEBUG"

    # Intermediary runs next to the client during development
    API_BASE_URL: str = "http://localhost:8000"
    S3_BUCKET: str = "video-uploader-dev-uploads"

    # Relaxed timeouts for development
    HTTP_TIMEOUT: float = 300.0
    THUMBNAIL_TIMEOUT: float = 10.0
    DURATION_TIMEOUT: float = 6.0

    # Local file storage fallback
    USE_LOCAL_STORAGE: bool = True
    LOCAL_UPLOAD_DIR: str = "./uploads"

    model_config = {
        "env_file": ".env.development",
        "case_sensitive": True,
        "extra": "ignore"
    }


# Development settings instance
dev_settings = DevelopmentSettings()
