import numpy as np
from dataclasses import dataclass, replace
from typing import Tuple

# Rec. 709 luminance weights used by the saturate() filter primitive
_LUMA_R = 0.213
_LUMA_G = 0.715
_LUMA_B = 0.072

@dataclass(frozen=True)
class FilterState:
    """
    Visual adjustments applied at export time

    Brightness, contrast and saturation are percentages where 100 is the
    identity, 0 fully attenuates and 200 doubles. Rotation is in degrees,
    clockwise.
    """
    brightness: float = 100.0
    contrast: float = 100.0
    saturation: float = 100.0
    rotation: float = 0.0

    def __post_init__(self):
        for name in ("brightness", "contrast", "saturation"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")

    @property
    def is_identity_color(self) -> bool:
        return self.brightness == 100 and self.contrast == 100 and self.saturation == 100

    @property
    def is_identity(self) -> bool:
        return self.is_identity_color and self.rotation == 0

    def with_changes(self, **changes) -> "FilterState":
        return replace(self, **changes)

    def css(self) -> str:
        """Equivalent CSS filter string, used for client previews"""
        return (
            f"brightness({self.brightness:g}%) contrast({self.contrast:g}%) "
            f"saturate({self.saturation:g}%)"
        )

    def as_dict(self) -> dict:
        return {
            "brightness": self.brightness,
            "contrast": self.contrast,
            "saturation": self.saturation,
            "rotation": self.rotation,
        }

IDENTITY_FILTERS = FilterState()

def _saturation_matrix(s: float) -> np.ndarray:
    """RGB saturate() matrix for amount s (1.0 is identity)"""
    return np.array([
        [_LUMA_R + (1 - _LUMA_R) * s, _LUMA_G - _LUMA_G * s, _LUMA_B - _LUMA_B * s],
        [_LUMA_R - _LUMA_R * s, _LUMA_G + (1 - _LUMA_G) * s, _LUMA_B - _LUMA_B * s],
        [_LUMA_R - _LUMA_R * s, _LUMA_G - _LUMA_G * s, _LUMA_B + (1 - _LUMA_B) * s],
    ], dtype=np.float64)

def color_transform(filters: FilterState) -> Tuple[np.ndarray, np.ndarray]:
    """
    Compose brightness, contrast and saturation into one affine transform

    The three primitives are folded into a single 3x3 matrix and offset
    (RGB order, 0-255 range) so the surface is filtered in one pass with
    one final clamp.

    Returns:
        (matrix, offset) such that rgb' = matrix @ rgb + offset
    """
    b = filters.brightness / 100.0
    c = filters.contrast / 100.0
    s = filters.saturation / 100.0

    # brightness: v * b
    # contrast:   v * c + 255 * (0.5 - 0.5 * c)
    # saturate:   M_s @ v
    sat = _saturation_matrix(s)
    matrix = sat * (c * b)
    offset = sat @ np.full(3, 255.0 * (0.5 - 0.5 * c))
    return matrix, offset

def apply_filters(image: np.ndarray, filters: FilterState) -> np.ndarray:
    """
    Apply the composited colour filter to a BGR or BGRA bitmap

    Alpha is left untouched. Identity filter values return an unmodified
    copy, so an identity export is pixel-identical to an unfiltered one.
    """
    if filters.is_identity_color:
        return image.copy()

    matrix, offset = color_transform(filters)

    # Bitmaps are BGR; reverse the RGB matrix on both axes
    bgr_matrix = matrix[::-1, ::-1]
    bgr_offset = offset[::-1]

    color = image[:, :, :3].astype(np.float32)
    transformed = color @ bgr_matrix.T.astype(np.float32) + bgr_offset.astype(np.float32)
    transformed = np.clip(np.rint(transformed), 0, 255).astype(np.uint8)

    result = image.copy()
    result[:, :, :3] = transformed
    return result
