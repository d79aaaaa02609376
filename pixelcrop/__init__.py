"""
PixelCrop: crop, adjust and export images, with a persisted gallery of
raster exports.
"""

__version__ = '1.0.0'
