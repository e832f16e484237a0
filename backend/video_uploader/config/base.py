"""
Base configuration settings
"""

import os
from typing import List, Optional
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Settings(BaseSettings):
    """Base settings configuration"""

    # Application settings
    APP_NAME: str = "Video Uploader"
    VERSION: str = "1.0.0"
    DEBUG: bool = False

    # API settings
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    API_BASE_URL: str = "http://localhost:8000"
    HTTP_TIMEOUT: float = 60.0

    # Redis settings (video metadata mirror)
    REDIS_ENABLED: bool = False
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: str = ""
    REDIS_DB: int = 0
    VIDEO_META_TTL: int = 7200

    # AWS S3 settings
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_REGION: str = "us-east-1"
    S3_BUCKET: str = "video-uploader-uploads"
    AWS_ENDPOINT_URL: Optional[str] = None

    # File intake settings
    MAX_FILE_SIZE: int = 5 * 1024 * 1024 * 1024  # 5GB
    MAX_FILES: int = 20
    ERROR_SUMMARY_LIMIT: int = 3
    SUPPORTED_VIDEO_TYPES_STR: str = (
        "video/mp4,video/quicktime,video/x-msvideo,video/x-matroska,video/webm,"
        "video/x-flv,video/x-ms-wmv,video/3gpp,video/mpeg,video/ogg"
    )
    SUPPORTED_EXTENSIONS_STR: str = "mp4,mov,avi,mkv,webm,flv,wmv,m4v,3gp"

    # Scheduler settings
    CONCURRENT_UPLOADS: int = 3
    URL_IMPORT_MODE: str = "sequential"  # "sequential" or "pool"
    URL_IMPORT_CONCURRENCY: int = 3

    # Transfer settings
    UPLOAD_CHUNK_SIZE: int = 1024 * 1024  # 1MB

    # Metadata extraction settings
    THUMBNAIL_TIMEOUT: float = 5.0
    DURATION_TIMEOUT: float = 3.0
    THUMBNAIL_WIDTH: int = 160
    THUMBNAIL_HEIGHT: int = 90
    THUMBNAIL_JPEG_QUALITY: int = 70
    THUMBNAIL_SEEK_SECONDS: float = 1.0
    THUMBNAIL_SEEK_FRACTION: float = 0.1
    METADATA_WORKERS: int = 4

    # Upload intermediary settings
    PRESIGNED_URL_EXPIRATION: int = 3600  # 1 hour
    MAX_BULK_FILES: int = 20
    MAX_URL_FILE_SIZE: int = 2 * 1024 * 1024 * 1024  # 2GB
    URL_IMPORT_USER_AGENT: str = "Video Uploader Import/1.0"
    UPLOAD_SESSION_TTL: int = 7200
    UPLOAD_SESSION_MAX: int = 1000

    # Logging settings
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "video-uploader.log"

    # Development settings
    USE_LOCAL_STORAGE: bool = False
    LOCAL_UPLOAD_DIR: str = "./uploads"

    @property
    def SUPPORTED_VIDEO_TYPES(self) -> List[str]:
        """Parse supported MIME types from string"""
        types_str = os.getenv('SUPPORTED_VIDEO_TYPES', self.SUPPORTED_VIDEO_TYPES_STR)
        return [t.strip() for t in types_str.split(',') if t.strip()]

    @property
    def SUPPORTED_EXTENSIONS(self) -> List[str]:
        """Parse supported extensions from string"""
        ext_str = os.getenv('SUPPORTED_EXTENSIONS', self.SUPPORTED_EXTENSIONS_STR)
        return [ext.strip().lstrip('.') for ext in ext_str.split(',') if ext.strip()]

    model_config = {
        "env_file": ".env",
        "case_sensitive": True,
        "extra": "ignore"  # Ignore extra fields from .env
    }


# Create settings instance
settings = Settings()


def apply_settings(source: Settings) -> Settings:
    """Copy an environment's values onto the shared settings instance"""
    for name in Settings.model_fields:
        setattr(settings, name, getattr(source, name))
    return settings
