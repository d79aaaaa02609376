from dataclasses import dataclass
from typing import Tuple
import os

@dataclass
class ExportConfig:
    """Configuration for the export pipeline"""

    # Encoding
    JPEG_QUALITY: int = int(os.getenv('JPEG_QUALITY', 100))
    PNG_COMPRESSION: int = 3
    PDF_FILENAME: str = os.getenv('PDF_FILENAME', 'cropped-image.pdf')
    # PDF page points per raster pixel
    PDF_POINTS_PER_PIXEL: float = 1.0

    # Filter slider ranges
    FILTER_PERCENT_RANGE: Tuple[int, int] = (0, 200)
    ROTATION_RANGE: Tuple[int, int] = (0, 360)

    # Surface limits
    MAX_SURFACE_PIXELS: int = int(os.getenv('MAX_SURFACE_PIXELS', 16384 * 16384))

    LOG_PROCESSING_STEPS: bool = True

    def __post_init__(self):
        """Clamp encoder settings to what the codecs accept"""
        self.JPEG_QUALITY = max(0, min(100, int(self.JPEG_QUALITY)))
        self.PNG_COMPRESSION = max(0, min(9, int(self.PNG_COMPRESSION)))
