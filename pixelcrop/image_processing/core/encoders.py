import cv2
import numpy as np
from io import BytesIO
from typing import Optional

from reportlab.lib.pagesizes import landscape
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from .artifacts import ExportArtifact, ExportFormat
from ..configs.processing_config import ExportConfig
from ..utils.image_utils import (
    EncodingFailed, composite_on_black, image_dimensions, timing_decorator
)

class SurfaceEncoder:
    """Encodes a rendered BGRA surface into an export artifact"""

    def __init__(self, config: Optional[ExportConfig] = None):
        self.config = config or ExportConfig()

    def encode(self, surface: np.ndarray, export_format: ExportFormat) -> ExportArtifact:
        if export_format is ExportFormat.JPEG:
            data = self.encode_jpeg(surface)
        elif export_format is ExportFormat.PNG:
            data = self.encode_png(surface)
        elif export_format is ExportFormat.PDF:
            data = self.encode_pdf(surface)
        else:
            raise EncodingFailed(f"No encoder for format {export_format!r}")

        width, height = image_dimensions(surface)
        return ExportArtifact(data=data, format=export_format, width=width, height=height)

    @timing_decorator
    def encode_jpeg(self, surface: np.ndarray) -> bytes:
        """Lossy encode at the configured quality; transparency becomes black"""
        flattened = composite_on_black(surface)
        return self._imencode('.jpg', flattened, [cv2.IMWRITE_JPEG_QUALITY, self.config.JPEG_QUALITY])

    @timing_decorator
    def encode_png(self, surface: np.ndarray) -> bytes:
        """Lossless encode, alpha preserved"""
        return self._imencode('.png', surface, [cv2.IMWRITE_PNG_COMPRESSION, self.config.PNG_COMPRESSION])

    @timing_decorator
    def encode_pdf(self, surface: np.ndarray) -> bytes:
        """
        Embed the surface as a single full-page JPEG in a one-page document

        The page is sized to the raster's pixel dimensions with the long
        edge horizontal, and the image is anchored at the top-left corner.
        A portrait raster is therefore taller than its page and its lower
        part is clipped.
        """
        jpeg_bytes = self.encode_jpeg(surface)
        width, height = image_dimensions(surface)
        ppp = self.config.PDF_POINTS_PER_PIXEL
        image_w, image_h = width * ppp, height * ppp
        page_w, page_h = landscape((image_w, image_h))

        try:
            buffer = BytesIO()
            pdf = canvas.Canvas(buffer, pagesize=(page_w, page_h))
            # PDF origin is bottom-left
            pdf.drawImage(
                ImageReader(BytesIO(jpeg_bytes)),
                0, page_h - image_h,
                width=image_w, height=image_h
            )
            pdf.showPage()
            pdf.save()
        except Exception as e:
            raise EncodingFailed(f"PDF generation failed: {str(e)}") from e

        return buffer.getvalue()

    @staticmethod
    def _imencode(ext: str, image: np.ndarray, params: list) -> bytes:
        try:
            success, buffer = cv2.imencode(ext, image, params)
        except cv2.error as e:
            raise EncodingFailed(f"{ext} encoding failed: {str(e)}") from e
        if not success:
            raise EncodingFailed(f"{ext} encoder rejected the surface")
        return buffer.tobytes()
