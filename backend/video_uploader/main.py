"""
FastAPI entry point for the upload intermediary

Hands out write destinations, receives transfers in local storage mode,
registers finished uploads and imports remote videos. Every response uses the
{"success", "data" | "error"} envelope.
"""

import os
import re
import tempfile
import uuid
from typing import Any, Dict, Optional, Union
from urllib.parse import urlparse

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response
from pydantic import BaseModel, ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from video_uploader.config.base import settings
from video_uploader.errors import RemoteFetchError
from video_uploader.models.intermediary import (
    ApiEnvelope,
    BulkConfirmedVideos,
    BulkConfirmUploadRequest,
    BulkPresignedUpload,
    BulkPresignedUploadRequest,
    ConfirmedFile,
    ConfirmedVideo,
    ConfirmUploadRequest,
    PresignedUpload,
    PresignedUploadRequest,
    UrlImportRequest,
    VideoRecord,
)
from video_uploader.services.redis_service import RedisService
from video_uploader.services.storage_service import LOCAL_UPLOAD_ROUTE, StorageService
from video_uploader.services.upload_registry import UploadRegistry
from video_uploader.services.url_fetcher import UrlFetcher
from video_uploader.utils.logger import get_logger

logger = get_logger(__name__)
logger.info(f"Starting {settings.APP_NAME} API initialization...")

PLACEHOLDER_DURATION = "0:00"
DOWNLOAD_URL_EXPIRATION = 3600

app = FastAPI(
    title=f"{settings.APP_NAME} API",
    description="Upload intermediary: presigned destinations, upload confirmation and URL imports",
    version=settings.VERSION,
)

base_allowed_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.DEBUG else base_allowed_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    max_age=86400,
)


# -- services ---------------------------------------------------------------

_storage: Optional[StorageService] = None
_registry: Optional[UploadRegistry] = None
_redis: Optional[RedisService] = None
_fetcher: Optional[UrlFetcher] = None


def get_storage() -> StorageService:
    global _storage
    if _storage is None:
        _storage = StorageService()
    return _storage


def get_registry() -> UploadRegistry:
    global _registry
    if _registry is None:
        _registry = UploadRegistry()
    return _registry


def get_redis() -> RedisService:
    global _redis
    if _redis is None:
        _redis = RedisService()
    return _redis


def get_url_fetcher() -> UrlFetcher:
    global _fetcher
    if _fetcher is None:
        _fetcher = UrlFetcher()
    return _fetcher


# -- envelope ---------------------------------------------------------------

def envelope(data: BaseModel, status_code: int = 200) -> JSONResponse:
    body = ApiEnvelope[type(data)](success=True, data=data).model_dump(mode="json", by_alias=True, exclude_none=True)
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"success": False, "error": "Invalid request body"})


def require_storage(storage: StorageService):
    if not storage.is_configured:
        raise HTTPException(status_code=503, detail="Storage is not configured")


def size_limit_gb(size: int) -> str:
    return f"{size / (1024 ** 3):g}GB"


# -- routes -----------------------------------------------------------------

@app.get("/")
async def root():
    return {"message": f"{settings.APP_NAME} API", "version": settings.VERSION}


@app.get("/health")
async def health_check(
    storage: StorageService = Depends(get_storage),
    registry: UploadRegistry = Depends(get_registry),
    redis_service: RedisService = Depends(get_redis),
):
    return {
        "status": "healthy",
        "registry": registry.get_stats(),
        "services": {
            "storage": ("local" if storage.use_local else "s3") if storage.is_configured else "unavailable",
            "redis": "available" if await redis_service.ping() else "unavailable",
        },
    }


@app.post("/api/videos/upload/presigned")
async def presigned_upload(
    request: Request,
    body: Dict[str, Any],
    storage: StorageService = Depends(get_storage),
    registry: UploadRegistry = Depends(get_registry),
):
    """Generate presigned upload URL(s) for direct client uploads"""
    base_url = str(request.base_url)
    if "files" in body:
        return _bulk_presigned(body, base_url, storage, registry)
    return _single_presigned(body, base_url, storage, registry)


def _grant_destination(
    storage: StorageService,
    registry: UploadRegistry,
    filename: str,
    content_type: str,
    file_size: int,
    organization_id: str,
    base_url: str,
) -> PresignedUpload:
    file_key = storage.generate_file_key(organization_id, filename)
    upload_url = storage.generate_presigned_upload_url(
        file_key, content_type, settings.PRESIGNED_URL_EXPIRATION, base_url=base_url
    )
    if not upload_url:
        raise HTTPException(status_code=500, detail="Failed to generate upload URL")

    upload_id = str(uuid.uuid4())
    registry.open_session(upload_id, file_key, filename, content_type, file_size, organization_id)
    return PresignedUpload(
        upload_id=upload_id,
        upload_url=upload_url,
        file_key=file_key,
        expires_in=settings.PRESIGNED_URL_EXPIRATION,
        filename=filename,
    )


def _single_presigned(body: dict, base_url: str, storage: StorageService, registry: UploadRegistry):
    missing = "Missing required fields: filename, contentType, fileSize, organizationId"
    try:
        req = PresignedUploadRequest.model_validate(body)
    except ValidationError:
        raise HTTPException(status_code=400, detail=missing)
    if not req.filename or not req.content_type or req.file_size <= 0 or not req.organization_id:
        raise HTTPException(status_code=400, detail=missing)

    supported = settings.SUPPORTED_VIDEO_TYPES
    if req.content_type not in supported:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported content type: {req.content_type}. Supported types: {', '.join(supported)}",
        )
    if req.file_size > settings.MAX_FILE_SIZE:
        raise HTTPException(
            status_code=400,
            detail=f"File size exceeds maximum allowed: {size_limit_gb(settings.MAX_FILE_SIZE)}",
        )

    require_storage(storage)
    destination = _grant_destination(
        storage, registry, req.filename, req.content_type, req.file_size, req.organization_id, base_url
    )
    return envelope(destination)


def _bulk_presigned(body: dict, base_url: str, storage: StorageService, registry: UploadRegistry):
    try:
        req = BulkPresignedUploadRequest.model_validate(body)
    except ValidationError:
        raise HTTPException(status_code=400, detail="Each file must have filename, contentType, and fileSize")
    if not req.files or not req.organization_id:
        raise HTTPException(status_code=400, detail="Missing required fields: files, organizationId")

    for f in req.files:
        if not f.filename or not f.content_type or f.file_size <= 0:
            raise HTTPException(status_code=400, detail="Each file must have filename, contentType, and fileSize")
        if f.content_type not in settings.SUPPORTED_VIDEO_TYPES:
            raise HTTPException(
                status_code=400, detail=f"Unsupported content type for {f.filename}: {f.content_type}"
            )
        if f.file_size > settings.MAX_FILE_SIZE:
            raise HTTPException(
                status_code=400,
                detail=f"File {f.filename} exceeds maximum size of {size_limit_gb(settings.MAX_FILE_SIZE)}",
            )

    if len(req.files) > settings.MAX_BULK_FILES:
        raise HTTPException(
            status_code=400, detail=f"Maximum {settings.MAX_BULK_FILES} files can be uploaded at once"
        )

    require_storage(storage)
    uploads = [
        _grant_destination(storage, registry, f.filename, f.content_type, f.file_size, req.organization_id, base_url)
        for f in req.files
    ]
    logger.info(f"Granted {len(uploads)} upload destinations for organization {req.organization_id}")
    return envelope(BulkPresignedUpload(uploads=uploads))


@app.put(LOCAL_UPLOAD_ROUTE + "/{file_key:path}")
async def receive_local_upload(
    file_key: str,
    request: Request,
    storage: StorageService = Depends(get_storage),
):
    """Transfer target in local storage mode"""
    if not storage.use_local:
        raise HTTPException(status_code=404, detail="Local uploads are disabled")
    try:
        written = await storage.write_local(file_key, request.stream())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    declared = request.headers.get("content-length")
    if declared is not None and declared.isdigit() and int(declared) != written:
        await storage.delete_file(file_key)
        raise HTTPException(status_code=400, detail=f"Incomplete upload: received {written} of {declared} bytes")
    return Response(status_code=200)


@app.get(LOCAL_UPLOAD_ROUTE + "/{file_key:path}")
async def serve_local_upload(file_key: str, storage: StorageService = Depends(get_storage)):
    if not storage.use_local:
        raise HTTPException(status_code=404, detail="Local uploads are disabled")
    try:
        path = storage.local_path(file_key)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not os.path.isfile(path):
        raise HTTPException(status_code=404, detail="Video not found")
    return FileResponse(path)


@app.post("/api/videos/upload/confirm")
async def confirm_upload(
    request: Request,
    body: Dict[str, Any],
    storage: StorageService = Depends(get_storage),
    registry: UploadRegistry = Depends(get_registry),
    redis_service: RedisService = Depends(get_redis),
):
    """Confirm a finished transfer and create the video record"""
    require_storage(storage)
    base_url = str(request.base_url)

    if "uploads" in body:
        try:
            bulk = BulkConfirmUploadRequest.model_validate(body)
        except ValidationError:
            raise HTTPException(status_code=400, detail="Invalid request body")
        return await _bulk_confirm(bulk, base_url, storage, registry, redis_service)

    try:
        req = ConfirmUploadRequest.model_validate(body)
    except ValidationError:
        raise HTTPException(status_code=400, detail="Invalid request body")

    confirmed = await _confirm_one(
        req, req.organization_id, req.author_id, req.collection_id, req.skip_ai_processing,
        base_url, storage, registry, redis_service,
    )
    return envelope(confirmed, status_code=201)


async def _confirm_one(
    upload: Union[ConfirmedFile, ConfirmUploadRequest],
    organization_id: str,
    author_id: str,
    collection_id: Optional[str],
    skip_ai_processing: Optional[bool],
    base_url: str,
    storage: StorageService,
    registry: UploadRegistry,
    redis_service: RedisService,
) -> ConfirmedVideo:
    session = registry.get_session(upload.upload_id)
    if session is None or session['file_key'] != upload.file_key:
        raise HTTPException(status_code=404, detail="Upload session not found")

    if await storage.object_size(upload.file_key) is None:
        raise HTTPException(status_code=400, detail="Uploaded file not found")

    title = upload.title.strip()
    if not title:
        raise HTTPException(status_code=400, detail="Title is required")
    if registry.title_exists(organization_id, title):
        raise HTTPException(status_code=409, detail=f'Video title "{title}" already exists')

    record = registry.add_video(VideoRecord(
        video_id=str(uuid.uuid4()),
        title=title,
        description=upload.description,
        duration=PLACEHOLDER_DURATION,
        file_key=upload.file_key,
        file_size=upload.file_size,
        content_type=session['content_type'],
        organization_id=organization_id,
        author_id=author_id,
        collection_id=collection_id,
        processing_status="completed" if skip_ai_processing else "pending",
    ))
    registry.close_session(upload.upload_id)
    await redis_service.cache_video_metadata(record.video_id, record.metadata())

    return ConfirmedVideo(
        video_id=record.video_id,
        video_url=storage.generate_presigned_download_url(
            record.file_key, DOWNLOAD_URL_EXPIRATION, base_url=base_url
        ) or "",
        thumbnail_url="",
        processing_status=record.processing_status,
        upload_id=upload.upload_id,
    )


async def _bulk_confirm(
    bulk: BulkConfirmUploadRequest,
    base_url: str,
    storage: StorageService,
    registry: UploadRegistry,
    redis_service: RedisService,
):
    videos = []
    errors = []
    for upload in bulk.uploads:
        try:
            videos.append(await _confirm_one(
                upload, bulk.organization_id, bulk.author_id, bulk.collection_id, bulk.skip_ai_processing,
                base_url, storage, registry, redis_service,
            ))
        except HTTPException as e:
            logger.error(f"Failed to confirm video upload {upload.upload_id}: {e.detail}")
            errors.append({"uploadId": upload.upload_id, "error": e.detail})

    result = BulkConfirmedVideos(videos=videos, errors=errors, succeeded=len(videos), failed=len(errors))
    return envelope(result, status_code=201)


_UNSAFE_TITLE_CHARS = re.compile(r"[^a-zA-Z0-9]")


@app.post("/api/videos/upload/url")
async def import_from_url(
    request: Request,
    req: UrlImportRequest,
    storage: StorageService = Depends(get_storage),
    registry: UploadRegistry = Depends(get_registry),
    redis_service: RedisService = Depends(get_redis),
    fetcher: UrlFetcher = Depends(get_url_fetcher),
):
    """Import a video from a remote URL"""
    parsed = urlparse(req.url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise HTTPException(status_code=400, detail="Invalid URL")

    require_storage(storage)

    title = req.title.strip()
    if not title:
        raise HTTPException(status_code=400, detail="Title is required")
    if registry.title_exists(req.organization_id, title):
        raise HTTPException(status_code=409, detail=f'Video title "{title}" already exists')

    try:
        remote = await fetcher.probe(req.url)
        extension = remote.extension
        fd, temp_path = tempfile.mkstemp(suffix=f".{extension}")
        os.close(fd)
        try:
            size = await fetcher.download(req.url, temp_path)
            safe_title = _UNSAFE_TITLE_CHARS.sub("_", title)[:50]
            file_key = storage.generate_file_key(req.organization_id, f"{uuid.uuid4().hex[:8]}-{safe_title}.{extension}")
            if not await storage.upload_file(temp_path, file_key, f"video/{extension}"):
                raise HTTPException(status_code=500, detail="Failed to store imported video")
        finally:
            if os.path.exists(temp_path):
                os.remove(temp_path)
    except RemoteFetchError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    # Another import may have claimed the title while this one was downloading
    if registry.title_exists(req.organization_id, title):
        await storage.delete_file(file_key)
        raise HTTPException(status_code=409, detail=f'Video title "{title}" already exists')

    record = registry.add_video(VideoRecord(
        video_id=str(uuid.uuid4()),
        title=title,
        description=req.description,
        duration=PLACEHOLDER_DURATION,
        file_key=file_key,
        file_size=size,
        content_type=f"video/{extension}",
        organization_id=req.organization_id,
        author_id=req.author_id,
        collection_id=req.collection_id,
        source_url=req.url,
    ))
    await redis_service.cache_video_metadata(record.video_id, record.metadata())
    logger.info(f"Imported {req.url} as video {record.video_id} ({size/(1024*1024):.1f}MB)")

    return envelope(
        ConfirmedVideo(
            video_id=record.video_id,
            video_url=storage.generate_presigned_download_url(
                file_key, DOWNLOAD_URL_EXPIRATION, base_url=str(request.base_url)
            ) or "",
            processing_status=record.processing_status,
        ),
        status_code=201,
    )


@app.get("/api/videos/{video_id}")
async def get_video(
    video_id: str,
    registry: UploadRegistry = Depends(get_registry),
    redis_service: RedisService = Depends(get_redis),
):
    record = registry.get_video(video_id)
    if record is not None:
        return {"success": True, "data": record.metadata()}

    cached = await redis_service.get_cached_video_metadata(video_id)
    if cached:
        return {"success": True, "data": cached}
    raise HTTPException(status_code=404, detail="Video not found")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT)
