import cv2
import numpy as np
import time
from io import BytesIO
from typing import Optional, Tuple
from functools import wraps

from PIL import Image, ImageOps, UnidentifiedImageError

from ...utils.logging_config import get_logger

logger = get_logger(__name__)

EXIF_ORIENTATION_TAG = 0x0112

def timing_decorator(func):
    """Decorator to measure and log processing time"""
    @wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.time()
        try:
            result = func(*args, **kwargs)
            processing_time = time.time() - start_time
            logger.debug(f"{func.__name__} completed in {processing_time:.4f} seconds")
            return result
        except Exception as e:
            processing_time = time.time() - start_time
            logger.error(f"{func.__name__} failed after {processing_time:.4f} seconds: {str(e)}")
            raise
    return wrapper

def is_image_mime_type(content_type: Optional[str]) -> bool:
    """Check a declared content type is in the image/* family"""
    return bool(content_type) and content_type.lower().startswith('image/')

def sniff_mime_type(data: bytes) -> Optional[str]:
    """
    Identify the MIME type of encoded image bytes from their header

    Returns:
        MIME type such as ``image/png``, or None when the bytes are not a
        format Pillow recognises
    """
    try:
        with Image.open(BytesIO(data)) as img:
            return Image.MIME.get(img.format)
    except (UnidentifiedImageError, OSError):
        return None

def _decode_oriented(data: bytes) -> Optional[np.ndarray]:
    """BGRA bitmap with EXIF orientation applied, or None when no transpose is needed"""
    try:
        with Image.open(BytesIO(data)) as loaded_im:
            if loaded_im.getexif().get(EXIF_ORIENTATION_TAG, 1) == 1:
                return None
            im = ImageOps.exif_transpose(loaded_im).convert("RGBA")
    except (UnidentifiedImageError, OSError):
        return None
    return cv2.cvtColor(np.asarray(im), cv2.COLOR_RGBA2BGRA)

def decode_image(data: bytes) -> np.ndarray:
    """
    Decode encoded image bytes into a BGRA bitmap

    The bitmap is upright: an EXIF orientation tag (phone JPEGs) is applied
    with Pillow first, so its size matches what a browser shows. Grayscale
    and BGR inputs gain an opaque alpha channel so every source bitmap has
    the same layout.
    """
    if not data:
        raise UnsupportedImageError("Empty image data")

    oriented = _decode_oriented(data)
    if oriented is not None:
        return oriented

    nparr = np.frombuffer(data, np.uint8)
    image = cv2.imdecode(nparr, cv2.IMREAD_UNCHANGED)
    if image is None:
        raise UnsupportedImageError("Failed to decode image data")

    if image.dtype != np.uint8:
        # 16-bit PNG/TIFF
        image = (image / 257).astype(np.uint8)

    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGRA)
    if image.shape[2] == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2BGRA)
    return image

def image_dimensions(image: np.ndarray) -> Tuple[int, int]:
    """Return (width, height) of a bitmap"""
    h, w = image.shape[:2]
    return w, h

def composite_on_black(image: np.ndarray) -> np.ndarray:
    """Flatten a BGRA bitmap onto an opaque black background"""
    if image.ndim == 3 and image.shape[2] == 4:
        alpha = image[:, :, 3:4].astype(np.float32) / 255.0
        flattened = image[:, :, :3].astype(np.float32) * alpha
        return np.clip(np.rint(flattened), 0, 255).astype(np.uint8)
    return image

class ImageProcessingError(Exception):
    """Base exception for export pipeline errors"""
    pass

class PreconditionNotMet(ImageProcessingError):
    """Export requested without a loaded image and a completed crop"""
    pass

class RenderSurfaceUnavailable(ImageProcessingError):
    """The off-screen drawing surface could not be allocated or drawn on"""
    pass

class EncodingFailed(ImageProcessingError):
    """The codec rejected the surface or its parameters"""
    pass

class ValidationError(ImageProcessingError):
    """Exception for input validation errors"""
    pass

class FormatValidationError(ValidationError):
    """Export format outside the supported set"""
    pass

class UnsupportedImageError(ValidationError):
    """Uploaded bytes are not a decodable image"""
    pass

class InvalidSessionTransition(ImageProcessingError):
    """Edit session operation not allowed from the current state"""
    pass

class ImageTooLarge(ValidationError):
    """Uploaded image exceeds the configured size limit"""
    pass
