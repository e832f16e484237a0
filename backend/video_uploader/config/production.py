"""
Production environment configuration
"""

from video_uploader.config.base import Settings


class ProductionSettings(Settings):
    """Production-specific settings"""

    DEBUG: bool = False
    LOG_LEVEL: str = "WARNING"

    # Production services
    S3_BUCKET: str = "video-uploader-prod-uploads"
    REDIS_ENABLED: bool = True

    # Shorter-lived upload grants
    PRESIGNED_URL_EXPIRATION: int = 1800  # 30 minutes
    UPLOAD_SESSION_TTL: int = 3600

    # Never write uploads to the local disk in production
    USE_LOCAL_STORAGE: bool = False

    model_config = {
        "env_file": ".env.production",
        "case_sensitive": True,
        "extra": "ignore"
    }


# Production settings instance
prod_settings = ProductionSettings()
