from dataclasses import dataclass
from typing import Tuple

@dataclass(frozen=True)
class DisplaySize:
    """Rendered (on-screen) size of the source image, in CSS pixels"""
    width: float
    height: float

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Display size must be positive, got {self.width}x{self.height}")

@dataclass(frozen=True)
class CropRegion:
    """Axis-aligned crop rectangle; rendered-space unless stated otherwise"""
    x: float
    y: float
    width: float
    height: float

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    @property
    def output_size(self) -> Tuple[int, int]:
        """Pixel size of the surface the crop is rendered into"""
        return int(round(self.width)), int(round(self.height))

    def scaled(self, scale_x: float, scale_y: float) -> "CropRegion":
        return CropRegion(
            x=self.x * scale_x,
            y=self.y * scale_y,
            width=self.width * scale_x,
            height=self.height * scale_y,
        )

    def as_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

def display_scale(natural_size: Tuple[int, int], display_size: DisplaySize) -> Tuple[float, float]:
    """
    Ratio of natural to rendered pixel dimensions on each axis

    Args:
        natural_size: (width, height) of the decoded bitmap
        display_size: size the image is rendered at by the client

    Returns:
        (scale_x, scale_y)
    """
    natural_w, natural_h = natural_size
    return natural_w / display_size.width, natural_h / display_size.height

def to_natural_space(crop: CropRegion, natural_size: Tuple[int, int],
                     display_size: DisplaySize) -> CropRegion:
    """Convert a rendered-space crop to the source bitmap's natural pixel space"""
    scale_x, scale_y = display_scale(natural_size, display_size)
    return crop.scaled(scale_x, scale_y)
