"""
Core export modules

This package contains the export pipeline components:
- Crop geometry and display-to-natural scaling
- Composited colour filters
- Edit session state machine
- Surface encoders (JPEG, PNG, PDF)
- The export pipeline itself
"""

from .artifacts import ExportArtifact, ExportFormat
from .encoders import SurfaceEncoder
from .export_pipeline import ExportPipeline, SourceImage
from .filters import FilterState, IDENTITY_FILTERS, apply_filters
from .geometry import CropRegion, DisplaySize, to_natural_space
from .session import EditSession, SessionState, SessionStore

__all__ = [
    'ExportArtifact',
    'ExportFormat',
    'SurfaceEncoder',
    'ExportPipeline',
    'SourceImage',
    'FilterState',
    'IDENTITY_FILTERS',
    'apply_filters',
    'CropRegion',
    'DisplaySize',
    'to_natural_space',
    'EditSession',
    'SessionState',
    'SessionStore',
]
