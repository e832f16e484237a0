"""
Video object storage
S3 (presigned PUT for direct client uploads) or a local directory in development
"""

import os
import re
import shutil
import time
from typing import AsyncIterator, Optional

import aioboto3
import boto3
from botocore.exceptions import BotoCoreError, ClientError

from video_uploader.config.base import settings
from video_uploader.utils.logger import get_logger

logger = get_logger(__name__)

LOCAL_UPLOAD_ROUTE = "/api/videos/upload/local"

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class StorageService:
    def __init__(self, use_local: Optional[bool] = None, local_dir: Optional[str] = None):
        self.use_local = settings.USE_LOCAL_STORAGE if use_local is None else use_local
        self.bucket = settings.S3_BUCKET
        self.region = settings.AWS_REGION
        self.client = None

        if self.use_local:
            self.local_dir = os.path.abspath(local_dir or settings.LOCAL_UPLOAD_DIR)
            os.makedirs(self.local_dir, exist_ok=True)
            self.enabled = True
            logger.info(f"Local storage initialized at {self.local_dir}")
            return

        # Check if S3 is configured
        if not all([settings.AWS_ACCESS_KEY_ID, settings.AWS_SECRET_ACCESS_KEY, settings.S3_BUCKET]):
            logger.warning("S3 credentials not configured - storage disabled")
            self.enabled = False
            return

        self.enabled = True
        self.client = boto3.client(
            's3',
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            region_name=settings.AWS_REGION,
            endpoint_url=settings.AWS_ENDPOINT_URL,
        )
        logger.info(f"S3 storage initialized for bucket: {self.bucket}")

    @property
    def is_configured(self) -> bool:
        return self.enabled

    @staticmethod
    def generate_file_key(organization_id: str, filename: str) -> str:
        """{org}/videos/{timestamp}-{filename}"""
        safe_name = _UNSAFE_KEY_CHARS.sub("_", filename).strip("_") or "video"
        return f"{organization_id}/videos/{int(time.time() * 1000)}-{safe_name}"

    def local_path(self, key: str) -> str:
        """Resolve a key inside the local upload directory"""
        path = os.path.abspath(os.path.join(self.local_dir, key))
        if os.path.commonpath([path, self.local_dir]) != self.local_dir:
            raise ValueError(f"Invalid file key: {key}")
        return path

    def generate_presigned_upload_url(
        self,
        key: str,
        content_type: str = "video/mp4",
        expires_in: int = 3600,
        base_url: str = "",
    ) -> Optional[str]:
        """Destination the client PUTs the file body to"""
        if not self.enabled:
            logger.warning("Storage not configured - cannot generate upload URL")
            return None

        if self.use_local:
            return f"{base_url.rstrip('/')}{LOCAL_UPLOAD_ROUTE}/{key}"

        try:
            url = self.client.generate_presigned_url(
                'put_object',
                Params={'Bucket': self.bucket, 'Key': key, 'ContentType': content_type},
                ExpiresIn=expires_in,
            )
            logger.info(f"Generated presigned upload URL for {key} (expires in {expires_in}s)")
            return url
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to generate presigned upload URL: {str(e)}")
            return None

    def generate_presigned_download_url(self, key: str, expires_in: int = 3600, base_url: str = "") -> Optional[str]:
        """URL for immediate playback of a stored object"""
        if not self.enabled:
            return None

        if self.use_local:
            return f"{base_url.rstrip('/')}{LOCAL_UPLOAD_ROUTE}/{key}"

        try:
            return self.client.generate_presigned_url(
                'get_object',
                Params={'Bucket': self.bucket, 'Key': key},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to generate presigned URL: {str(e)}")
            return None

    async def object_size(self, key: str) -> Optional[int]:
        """Size of a stored object, None when it does not exist"""
        if not self.enabled:
            return None

        if self.use_local:
            try:
                return os.path.getsize(self.local_path(key))
            except (OSError, ValueError):
                return None

        try:
            head = self.client.head_object(Bucket=self.bucket, Key=key)
            return int(head.get('ContentLength', 0))
        except ClientError as e:
            logger.warning(f"Object {key} not found in S3: {e}")
            return None

    async def write_local(self, key: str, chunks: AsyncIterator[bytes]) -> int:
        """Store a streamed request body in the local upload directory"""
        path = self.local_path(key)
        os.makedirs(os.path.dirname(path), exist_ok=True)

        written = 0
        with open(path, "wb") as f:
            async for chunk in chunks:
                f.write(chunk)
                written += len(chunk)

        logger.info(f"Stored local upload {key} ({written/(1024*1024):.1f}MB)")
        return written

    async def upload_file(self, file_path: str, key: str, content_type: str = "video/mp4") -> bool:
        """Store a file from disk under key"""
        if not self.enabled:
            logger.warning("Storage not configured - cannot upload file")
            return False

        if self.use_local:
            target = self.local_path(key)
            os.makedirs(os.path.dirname(target), exist_ok=True)
            shutil.copyfile(file_path, target)
            return True

        try:
            session = aioboto3.Session(
                aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
                aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
                region_name=self.region,
            )
            async with session.client('s3', endpoint_url=settings.AWS_ENDPOINT_URL) as s3:
                await s3.upload_file(file_path, self.bucket, key, ExtraArgs={'ContentType': content_type})

            logger.info(f"Successfully uploaded {key} to S3")
            return True
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to upload file to S3: {str(e)}")
            return False

    async def delete_file(self, key: str) -> bool:
        if not self.enabled:
            return False

        if self.use_local:
            try:
                os.remove(self.local_path(key))
                return True
            except (OSError, ValueError):
                return False

        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
            logger.info(f"Successfully deleted file from S3: {key}")
            return True
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to delete file from S3: {str(e)}")
            return False
