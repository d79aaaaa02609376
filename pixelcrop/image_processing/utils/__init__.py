"""
Image processing utilities
"""

from .image_utils import (
    timing_decorator,
    is_image_mime_type,
    sniff_mime_type,
    decode_image,
    image_dimensions,
    composite_on_black,
    ImageProcessingError,
    PreconditionNotMet,
    RenderSurfaceUnavailable,
    EncodingFailed,
    ValidationError,
    FormatValidationError,
    UnsupportedImageError,
    ImageTooLarge,
    InvalidSessionTransition,
)

__all__ = [
    'timing_decorator',
    'is_image_mime_type',
    'sniff_mime_type',
    'decode_image',
    'image_dimensions',
    'composite_on_black',
    'ImageProcessingError',
    'PreconditionNotMet',
    'RenderSurfaceUnavailable',
    'EncodingFailed',
    'ValidationError',
    'FormatValidationError',
    'UnsupportedImageError',
    'ImageTooLarge',
    'InvalidSessionTransition',
]
