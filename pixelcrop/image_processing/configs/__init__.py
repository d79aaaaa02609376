"""
Export pipeline configuration
"""

from .processing_config import ExportConfig

__all__ = ['ExportConfig']
