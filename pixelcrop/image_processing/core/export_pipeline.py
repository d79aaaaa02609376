import cv2
import math
import numpy as np
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .artifacts import ExportArtifact, ExportFormat
from .encoders import SurfaceEncoder
from .filters import FilterState, apply_filters
from .geometry import CropRegion, DisplaySize, to_natural_space
from .session import EditSession
from ..configs.processing_config import ExportConfig
from ..utils.image_utils import (
    ImageProcessingError, PreconditionNotMet, RenderSurfaceUnavailable,
    image_dimensions, logger
)
from ...utils.logging_config import get_logger, log_performance

perf_logger = get_logger("pixelcrop.image_processing.export")

@dataclass(frozen=True)
class SourceImage:
    """Decoded source bitmap plus the size it is rendered at"""
    bitmap: np.ndarray
    display_size: DisplaySize

    @property
    def natural_size(self) -> Tuple[int, int]:
        return image_dimensions(self.bitmap)

def _translation(tx: float, ty: float) -> np.ndarray:
    return np.array([[1.0, 0.0, tx], [0.0, 1.0, ty], [0.0, 0.0, 1.0]])

def _scaling(sx: float, sy: float) -> np.ndarray:
    return np.array([[sx, 0.0, 0.0], [0.0, sy, 0.0], [0.0, 0.0, 1.0]])

def _rotation(degrees: float) -> np.ndarray:
    # Clockwise on screen, since the y axis points down
    theta = degrees * math.pi / 180
    c, s = math.cos(theta), math.sin(theta)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])

def draw_transform(natural_crop: CropRegion, dest_size: Tuple[float, float],
                   surface_size: Tuple[int, int], rotation: float) -> np.ndarray:
    """
    Build the source-to-surface affine transform for one draw call

    The natural-space crop rectangle is mapped onto ``(0, 0, dest_w,
    dest_h)``. A non-zero rotation turns the drawing transform about the
    centre of the surface, not the centre of the source image.

    Returns:
        2x3 matrix in pixel-index coordinates, as cv2.warpAffine expects
    """
    dest_w, dest_h = dest_size
    surface_w, surface_h = surface_size

    crop_to_dest = (
        _scaling(dest_w / natural_crop.width, dest_h / natural_crop.height)
        @ _translation(-natural_crop.x, -natural_crop.y)
    )

    transform = crop_to_dest
    if rotation != 0:
        cx, cy = surface_w / 2, surface_h / 2
        transform = (
            _translation(cx, cy) @ _rotation(rotation) @ _translation(-cx, -cy)
            @ transform
        )

    # Continuous coordinates put pixel centres at +0.5
    transform = _translation(-0.5, -0.5) @ transform @ _translation(0.5, 0.5)
    return transform[:2]

class ExportPipeline:
    """Crop, filter, rotate and encode a source image for export"""

    def __init__(self, config: Optional[ExportConfig] = None):
        self.config = config or ExportConfig()
        self.encoder = SurfaceEncoder(self.config)

        self.stats = {
            'total_exports': 0,
            'successful_exports': 0,
            'failed_exports': 0,
            'total_processing_time': 0.0,
            'exports_by_format': {f.value: 0 for f in ExportFormat},
            'last_error': None
        }
        # render() runs on executor threads
        self._stats_lock = threading.Lock()

        logger.info(f"ExportPipeline initialized with config: {self.config}")

    def allocate_surface(self, width: int, height: int) -> np.ndarray:
        """Allocate a transparent BGRA surface"""
        if width <= 0 or height <= 0:
            raise RenderSurfaceUnavailable(f"Cannot allocate a {width}x{height} surface")
        if width * height > self.config.MAX_SURFACE_PIXELS:
            raise RenderSurfaceUnavailable(
                f"Surface {width}x{height} exceeds {self.config.MAX_SURFACE_PIXELS} pixels"
            )
        try:
            return np.zeros((height, width, 4), dtype=np.uint8)
        except MemoryError as e:
            raise RenderSurfaceUnavailable(f"Out of memory allocating {width}x{height} surface") from e

    def composite(self, source: SourceImage, crop: CropRegion,
                  filters: FilterState) -> np.ndarray:
        """
        Render the crop onto a fresh surface without encoding it

        Args:
            source: decoded bitmap and its rendered size
            crop: rendered-space crop rectangle
            filters: colour filter values and rotation

        Returns:
            BGRA surface of ``crop.output_size``
        """
        if crop is None or crop.is_empty:
            raise PreconditionNotMet("Please select an image and crop it first")

        # 1. surface
        surface_w, surface_h = crop.output_size
        surface = self.allocate_surface(surface_w, surface_h)

        # 2 + 4. transform, crop and rescale in one resample
        natural_crop = to_natural_space(crop, source.natural_size, source.display_size)
        matrix = draw_transform(
            natural_crop, (crop.width, crop.height), (surface_w, surface_h), filters.rotation
        )
        try:
            cv2.warpAffine(
                source.bitmap, matrix, (surface_w, surface_h),
                dst=surface,
                flags=cv2.INTER_LINEAR,
                borderMode=cv2.BORDER_CONSTANT,
                borderValue=(0, 0, 0, 0)
            )
        except (cv2.error, MemoryError) as e:
            raise RenderSurfaceUnavailable(f"Drawing onto surface failed: {str(e)}") from e

        # 3. composited filter on the drawn pixels only
        if not filters.is_identity_color:
            surface = apply_filters(surface, filters)
            surface[surface[:, :, 3] == 0, :3] = 0

        if self.config.LOG_PROCESSING_STEPS:
            logger.debug(
                f"Composited natural crop {natural_crop.as_dict()} onto "
                f"{surface_w}x{surface_h} surface, filters={filters.as_dict()}"
            )
        return surface

    @log_performance(perf_logger, "export render")
    def render(self, source: SourceImage, crop: CropRegion, filters: FilterState,
               target_format: ExportFormat) -> ExportArtifact:
        """
        Produce an encoded export artifact

        Raises:
            PreconditionNotMet: no crop, or an empty one
            RenderSurfaceUnavailable: the surface could not be allocated or drawn
            EncodingFailed: the codec rejected the surface
        """
        start_time = time.time()
        with self._stats_lock:
            self.stats['total_exports'] += 1
        target_format = ExportFormat.parse(target_format)

        try:
            surface = self.composite(source, crop, filters)
            artifact = self.encoder.encode(surface, target_format)
        except ImageProcessingError as e:
            with self._stats_lock:
                self.stats['failed_exports'] += 1
                self.stats['last_error'] = str(e)
            raise

        processing_time = time.time() - start_time
        with self._stats_lock:
            self.stats['successful_exports'] += 1
            self.stats['total_processing_time'] += processing_time
            self.stats['exports_by_format'][target_format.value] += 1

        perf_logger.log_export_result(
            target_format.value, artifact.width, artifact.height, artifact.size_bytes
        )
        return artifact

    def render_session(self, session: EditSession, target_format: ExportFormat) -> ExportArtifact:
        """Render the completed crop of an edit session"""
        session.require_exportable()
        source = SourceImage(bitmap=session.source_image, display_size=session.display_size)
        return self.render(source, session.completed_crop, session.filters, target_format)

    def get_processing_statistics(self) -> Dict[str, Any]:
        with self._stats_lock:
            stats = dict(self.stats)
            stats['exports_by_format'] = dict(self.stats['exports_by_format'])
        successful = stats['successful_exports']
        stats['average_processing_time'] = (
            stats['total_processing_time'] / successful if successful else 0.0
        )
        return stats
