"""
PixelCrop Main Application
"""

from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response
from pydantic import BaseModel, Field
import time
import uvicorn

from .core.config import get_cors_config, get_settings
from .core.services.editor_service import ImageEditorService, SessionNotFound
from .image_processing.configs.processing_config import ExportConfig
from .image_processing.core.artifacts import ExportFormat
from .image_processing.core.export_pipeline import ExportPipeline
from .image_processing.core.filters import FilterState
from .image_processing.core.geometry import CropRegion, DisplaySize
from .image_processing.core.session import SessionStore
from .image_processing.utils.image_utils import (
    ImageTooLarge, InvalidSessionTransition, ValidationError
)
from .storage import (
    AssetPersistenceGateway, BlobUploader, LocalStorageBackend, UploadFailed,
    create_storage_backend
)
from .utils.error_handler import ErrorType
from .utils.logging_config import get_logger, setup_logging

logger = get_logger(__name__)

settings = get_settings()

app = FastAPI(
    title=f"{settings.app_name} API",
    description="Crop, adjust and export images, with a gallery of persisted exports",
    version=settings.app_version,
    docs_url=settings.docs_url,
    redoc_url=settings.redoc_url
)

app.add_middleware(CORSMiddleware, **get_cors_config(settings))

# Versioned API routes, mounted below once every route is declared
api = APIRouter(prefix=settings.api_v1_prefix)

startup_time = time.time()
request_count = 0


class CropPayload(BaseModel):
    """Crop rectangle in rendered (on-screen) pixels"""
    x: float
    y: float
    width: float = Field(ge=0)
    height: float = Field(ge=0)

    def to_region(self) -> CropRegion:
        return CropRegion(self.x, self.y, self.width, self.height)


class DisplayPayload(BaseModel):
    width: float = Field(gt=0)
    height: float = Field(gt=0)


PERCENT_MIN, PERCENT_MAX = ExportConfig.FILTER_PERCENT_RANGE
ROTATION_MIN, ROTATION_MAX = ExportConfig.ROTATION_RANGE


class FiltersPayload(BaseModel):
    brightness: float = Field(default=100, ge=PERCENT_MIN, le=PERCENT_MAX)
    contrast: float = Field(default=100, ge=PERCENT_MIN, le=PERCENT_MAX)
    saturation: float = Field(default=100, ge=PERCENT_MIN, le=PERCENT_MAX)
    rotation: float = Field(default=0, ge=ROTATION_MIN, le=ROTATION_MAX)

    def to_state(self) -> FilterState:
        return FilterState(
            brightness=self.brightness,
            contrast=self.contrast,
            saturation=self.saturation,
            rotation=self.rotation,
        )


@lru_cache()
def get_editor_service() -> ImageEditorService:
    """Build the editor service once per process"""
    storage = create_storage_backend(settings)
    gateway = AssetPersistenceGateway(storage, BlobUploader(timeout=settings.storage_timeout))
    pipeline = ExportPipeline(ExportConfig(
        JPEG_QUALITY=settings.jpeg_quality,
        PDF_FILENAME=settings.pdf_filename,
    ))
    return ImageEditorService(
        gateway,
        pipeline=pipeline,
        sessions=SessionStore(max_sessions=settings.max_sessions),
        max_image_size_bytes=settings.max_image_size_bytes,
    )


def get_local_storage(service: ImageEditorService = Depends(get_editor_service)) -> LocalStorageBackend:
    storage = service.gateway.storage
    if not isinstance(storage, LocalStorageBackend):
        raise HTTPException(status_code=404, detail="Local storage is not enabled")
    return storage


# Request counting middleware
@app.middleware("http")
async def count_requests(request, call_next):
    global request_count
    request_count += 1

    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time

    response.headers["X-Process-Time"] = str(process_time)
    return response


@app.get("/health")
async def health_check(service: ImageEditorService = Depends(get_editor_service)):
    """Basic health check endpoint"""
    return JSONResponse({
        "status": "healthy",
        "timestamp": time.time(),
        "uptime": time.time() - startup_time,
        "request_count": request_count,
        "version": settings.app_version,
        "storage_backend": service.gateway.storage.name,
        "active_sessions": len(service.sessions),
    })


@api.get("/statistics")
async def get_statistics(service: ImageEditorService = Depends(get_editor_service)):
    """Export and error statistics"""
    stats = service.get_statistics()
    stats["api_statistics"] = {
        "total_requests": request_count,
        "uptime_seconds": time.time() - startup_time,
    }
    return JSONResponse(stats)


# Edit session endpoints
@api.post("/sessions", status_code=201)
async def create_session(
    file: UploadFile = File(...),
    display_width: Optional[float] = Form(None),
    display_height: Optional[float] = Form(None),
    service: ImageEditorService = Depends(get_editor_service)
):
    """
    Upload an image and start an edit session

    ``display_width``/``display_height`` give the size the client renders
    the image at; crops are sent in that coordinate space.
    """
    display_size = None
    if display_width is not None and display_height is not None:
        try:
            display_size = DisplaySize(display_width, display_height)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    image_data = await file.read()
    session = await service.open_session(
        image_data,
        file.filename or "image",
        file.content_type,
        display_size
    )
    return JSONResponse(status_code=201, content=session.to_dict())


@api.get("/sessions/{session_id}")
async def get_session(session_id: str, service: ImageEditorService = Depends(get_editor_service)):
    return JSONResponse(service.get_session(session_id).to_dict())


@api.delete("/sessions/{session_id}", status_code=204)
async def delete_session(session_id: str, service: ImageEditorService = Depends(get_editor_service)):
    service.close_session(session_id)
    return Response(status_code=204)


@api.put("/sessions/{session_id}/display")
async def set_display_size(
    session_id: str,
    payload: DisplayPayload,
    service: ImageEditorService = Depends(get_editor_service)
):
    session = service.get_session(session_id)
    session.set_display_size(DisplaySize(payload.width, payload.height))
    return JSONResponse(session.to_dict())


@api.put("/sessions/{session_id}/crop")
async def update_crop(
    session_id: str,
    payload: CropPayload,
    service: ImageEditorService = Depends(get_editor_service)
):
    """Record an in-progress crop"""
    session = service.get_session(session_id)
    session.update_crop(payload.to_region())
    return JSONResponse(session.to_dict())


@api.post("/sessions/{session_id}/crop/complete")
async def complete_crop(
    session_id: str,
    payload: Optional[CropPayload] = None,
    service: ImageEditorService = Depends(get_editor_service)
):
    """Confirm the crop; the body may carry the final rectangle"""
    session = service.get_session(session_id)
    session.complete_crop(payload.to_region() if payload else None)
    return JSONResponse(session.to_dict())


@api.put("/sessions/{session_id}/filters")
async def set_filters(
    session_id: str,
    payload: FiltersPayload,
    service: ImageEditorService = Depends(get_editor_service)
):
    session = service.get_session(session_id)
    session.set_filters(payload.to_state())
    return JSONResponse(session.to_dict())


@api.post("/sessions/{session_id}/filters/reset")
async def reset_filters(session_id: str, service: ImageEditorService = Depends(get_editor_service)):
    session = service.get_session(session_id)
    session.reset_filters()
    return JSONResponse(session.to_dict())


@api.post("/sessions/{session_id}/export/{export_format}")
async def export_session(
    session_id: str,
    export_format: str,
    service: ImageEditorService = Depends(get_editor_service)
):
    """
    Export the session's crop

    JPEG and PNG exports are stored and appear in the gallery. PDF exports
    are returned as a file download and are not stored.
    """
    fmt = ExportFormat.parse(export_format)
    outcome = await service.export(session_id, fmt)

    if not outcome.success:
        status_code = 400 if outcome.error_type == ErrorType.PRECONDITION_NOT_MET.value else 500
        content = outcome.to_dict()
        content.update({"error": outcome.notice, "status_code": status_code, "timestamp": time.time()})
        return JSONResponse(status_code=status_code, content=content)

    if fmt is ExportFormat.PDF:
        return Response(
            content=outcome.artifact.data,
            media_type=outcome.artifact.mime_type,
            headers={"Content-Disposition": f'attachment; filename="{outcome.filename}"'}
        )

    return JSONResponse(status_code=201, content=outcome.to_dict())


# Gallery
@api.get("/images")
async def list_images(service: ImageEditorService = Depends(get_editor_service)):
    """All persisted exports; ``url`` is null where it could not be resolved"""
    listed = await service.list_gallery()
    return JSONResponse([entry.to_dict() for entry in listed])


app.include_router(api)


# Local storage backend endpoints
@app.post("/storage/upload/{token}")
async def storage_upload(
    token: str,
    request: Request,
    storage: LocalStorageBackend = Depends(get_local_storage)
):
    """Single-use upload target handed out by the local storage backend"""
    data = await request.body()
    content_type = request.headers.get("content-type", "application/octet-stream")
    try:
        storage_id = await storage.accept_upload(token, data, content_type)
    except UploadFailed as e:
        raise HTTPException(status_code=400, detail=str(e))
    return JSONResponse({"storageId": storage_id})


@app.get("/storage/blobs/{storage_id}")
async def storage_blob(storage_id: str, storage: LocalStorageBackend = Depends(get_local_storage)):
    blob = await storage.open_blob(storage_id)
    if blob is None:
        raise HTTPException(status_code=404, detail="Blob not found")
    path, content_type = blob
    return FileResponse(path, media_type=content_type)


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": message,
            "status_code": status_code,
            "timestamp": time.time()
        }
    )


# Error handlers
@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    """Custom HTTP exception handler"""
    return _error_response(exc.status_code, exc.detail)


@app.exception_handler(SessionNotFound)
async def session_not_found_handler(request, exc):
    return _error_response(404, str(exc))


@app.exception_handler(InvalidSessionTransition)
async def invalid_transition_handler(request, exc):
    return _error_response(409, str(exc))


@app.exception_handler(ImageTooLarge)
async def image_too_large_handler(request, exc):
    return _error_response(413, str(exc))


@app.exception_handler(ValidationError)
async def validation_error_handler(request, exc):
    return _error_response(400, str(exc))


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """General exception handler"""
    logger.error(f"Unhandled exception: {str(exc)}")
    return _error_response(500, "Internal server error")


@app.on_event("startup")
async def startup_event():
    """Application startup tasks"""
    global startup_time
    startup_time = time.time()

    setup_logging(
        log_level=settings.log_level,
        log_file=settings.log_file,
        max_file_size=settings.log_max_size_mb * 1024 * 1024,
        backup_count=settings.log_backup_count,
        format_string=settings.log_format
    )
    logger.info(f"Starting {settings.app_name} API {settings.app_version}...")
    logger.info(f"Storage backend: {settings.storage_backend}")


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown tasks"""
    logger.info(f"Shutting down {settings.app_name} API...")
    if get_editor_service.cache_info().currsize:
        await get_editor_service().close()


@app.get("/")
async def root():
    """API root endpoint with feature overview"""
    return JSONResponse({
        "name": f"{settings.app_name} API",
        "version": settings.app_version,
        "description": "Crop, adjust and export images",
        "features": {
            "editing": {
                "description": "Upload an image, crop it and adjust brightness, contrast, saturation and rotation",
                "endpoints": [f"{settings.api_v1_prefix}/sessions"]
            },
            "export": {
                "description": "Export as JPEG or PNG (stored) or PDF (downloaded)",
                "formats": [f.value for f in ExportFormat]
            },
            "gallery": {
                "description": "Persisted raster exports",
                "endpoints": [f"{settings.api_v1_prefix}/images"]
            }
        },
        "documentation": {
            "swagger_ui": settings.docs_url,
            "redoc": settings.redoc_url
        },
        "uptime": time.time() - startup_time,
        "requests_served": request_count
    })


def run():
    uvicorn.run(
        "pixelcrop.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower()
    )


if __name__ == "__main__":
    run()
