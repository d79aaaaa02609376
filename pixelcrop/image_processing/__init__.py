"""
Export pipeline for PixelCrop

This package turns an edit session (source bitmap, confirmed crop and
filter values) into an encoded JPEG, PNG or PDF artifact.
"""

from .core.export_pipeline import ExportPipeline
from .configs.processing_config import ExportConfig

__all__ = [
    'ExportPipeline',
    'ExportConfig',
]

__version__ = '1.0.0'
