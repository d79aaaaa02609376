import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ...image_processing.configs.processing_config import ExportConfig
from ...image_processing.core.artifacts import ExportArtifact, ExportFormat
from ...image_processing.core.export_pipeline import ExportPipeline, SourceImage
from ...image_processing.core.geometry import DisplaySize
from ...image_processing.core.session import EditSession, SessionStore
from ...image_processing.utils.image_utils import (
    ImageTooLarge, UnsupportedImageError, decode_image, is_image_mime_type,
    sniff_mime_type
)
from ...storage.gateway import AssetPersistenceGateway
from ...storage.models import ListedAsset
from ...utils.error_handler import ExportErrorHandler
from ...utils.logging_config import get_logger

logger = get_logger(__name__)

SUCCESS_NOTICE = "Image processed successfully!"
PDF_NOTICE = "PDF ready for download"
NOT_AN_IMAGE_NOTICE = "Please select an image file"
UNRECOGNISED_IMAGE_NOTICE = "File content is not a recognised image format"

class SessionNotFound(LookupError):
    """No edit session with the given id"""
    pass

@dataclass
class ExportOutcome:
    """Result of one user-triggered export"""
    success: bool
    format: str
    notice: str
    processing_time: float
    asset_id: Optional[str] = None
    artifact: Optional[ExportArtifact] = None
    filename: Optional[str] = None
    error_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "success": self.success,
            "format": self.format,
            "notice": self.notice,
            "processing_time": self.processing_time,
        }
        if self.asset_id is not None:
            result["asset_id"] = self.asset_id
        if self.artifact is not None:
            result["width"] = self.artifact.width
            result["height"] = self.artifact.height
            result["size_bytes"] = self.artifact.size_bytes
        if self.error_type is not None:
            result["error_type"] = self.error_type
        return result

class ImageEditorService:
    """Edit sessions, exports and the gallery, wired to one storage gateway"""

    def __init__(
        self,
        gateway: AssetPersistenceGateway,
        pipeline: Optional[ExportPipeline] = None,
        sessions: Optional[SessionStore] = None,
        error_handler: Optional[ExportErrorHandler] = None,
        max_image_size_bytes: int = 10 * 1024 * 1024,
    ):
        self.gateway = gateway
        self.pipeline = pipeline or ExportPipeline(ExportConfig())
        self.sessions = sessions or SessionStore()
        self.error_handler = error_handler or ExportErrorHandler()
        self.max_image_size_bytes = max_image_size_bytes

        logger.info(f"ImageEditorService initialized with {gateway.storage.name} storage")

    async def open_session(self, data: bytes, file_name: str, content_type: Optional[str],
                           display_size: Optional[DisplaySize] = None) -> EditSession:
        """
        Start an edit session from an uploaded file

        Raises:
            UnsupportedImageError: not declared as an image, or not decodable
            ImageTooLarge: bigger than the configured limit
        """
        if not is_image_mime_type(content_type):
            raise UnsupportedImageError(NOT_AN_IMAGE_NOTICE)
        if not data:
            raise UnsupportedImageError("Empty image file")
        if len(data) > self.max_image_size_bytes:
            raise ImageTooLarge(
                f"Image file too large (max {self.max_image_size_bytes // (1024 * 1024)}MB)"
            )

        sniffed = sniff_mime_type(data)
        if sniffed is None:
            raise UnsupportedImageError(UNRECOGNISED_IMAGE_NOTICE)
        if sniffed != content_type:
            logger.warning(f"{file_name}: declared {content_type} but content is {sniffed}")

        loop = asyncio.get_running_loop()
        image = await loop.run_in_executor(None, decode_image, data)

        session = self.sessions.create()
        session.load_image(image, file_name, display_size)
        logger.info(f"Opened session {session.id} for {file_name}")
        return session

    def get_session(self, session_id: str) -> EditSession:
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFound(f"Session {session_id} not found")
        return session

    def close_session(self, session_id: str):
        if not self.sessions.discard(session_id):
            raise SessionNotFound(f"Session {session_id} not found")

    async def export(self, session_id: str, export_format: ExportFormat) -> ExportOutcome:
        """
        Render the session's crop and deliver it

        Raster formats are persisted through the gateway; PDF is handed back
        as a download and never stored. Every failure is caught here, logged
        and reduced to a single notice; nothing is retried.
        """
        start_time = time.time()
        export_format = ExportFormat.parse(export_format)
        session = self.get_session(session_id)
        context = {"session_id": session_id, "format": export_format.value}

        try:
            session.require_exportable()

            # Snapshot the session so later edits cannot race the render
            source = SourceImage(bitmap=session.source_image, display_size=session.display_size)
            crop = session.completed_crop
            filters = session.filters
            file_name = session.file_name

            loop = asyncio.get_running_loop()
            artifact = await loop.run_in_executor(
                None, self.pipeline.render, source, crop, filters, export_format
            )

            if export_format is ExportFormat.PDF:
                return ExportOutcome(
                    success=True,
                    format=export_format.value,
                    notice=PDF_NOTICE,
                    processing_time=time.time() - start_time,
                    artifact=artifact,
                    filename=self.pipeline.config.PDF_FILENAME,
                )

            asset_id = await self.gateway.persist(artifact, file_name, export_format)
            return ExportOutcome(
                success=True,
                format=export_format.value,
                notice=SUCCESS_NOTICE,
                processing_time=time.time() - start_time,
                asset_id=asset_id,
                artifact=artifact,
            )

        except Exception as e:
            handled = self.error_handler.handle_error(e, context)
            return ExportOutcome(
                success=False,
                format=export_format.value,
                notice=handled["notice"],
                processing_time=time.time() - start_time,
                error_type=handled["error_type"],
            )

    async def list_gallery(self) -> List[ListedAsset]:
        return await self.gateway.list()

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "active_sessions": len(self.sessions),
            "export_pipeline": self.pipeline.get_processing_statistics(),
            "errors": self.error_handler.get_error_statistics(),
        }

    async def close(self):
        await self.gateway.close()
