from dataclasses import dataclass
from enum import Enum

from ..utils.image_utils import FormatValidationError

class ExportFormat(str, Enum):
    """Closed set of export formats"""
    JPEG = "jpeg"
    PNG = "png"
    PDF = "pdf"

    @classmethod
    def parse(cls, value) -> "ExportFormat":
        """Validate a raw format value at the system boundary"""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(f.value for f in cls)
            raise FormatValidationError(
                f"Unsupported export format {value!r}; expected one of: {allowed}"
            ) from None

    @property
    def mime_type(self) -> str:
        return {
            ExportFormat.JPEG: "image/jpeg",
            ExportFormat.PNG: "image/png",
            ExportFormat.PDF: "application/pdf",
        }[self]

    @property
    def is_raster(self) -> bool:
        return self is not ExportFormat.PDF

@dataclass(frozen=True)
class ExportArtifact:
    """Encoded output of a single export"""
    data: bytes
    format: ExportFormat
    width: int
    height: int

    @property
    def mime_type(self) -> str:
        return self.format.mime_type

    @property
    def size_bytes(self) -> int:
        return len(self.data)
