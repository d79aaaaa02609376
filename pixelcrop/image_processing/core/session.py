import time
import uuid
from enum import Enum
from typing import Dict, Optional, Tuple

import numpy as np

from .filters import FilterState, IDENTITY_FILTERS
from .geometry import CropRegion, DisplaySize, display_scale, to_natural_space
from ..utils.image_utils import (
    InvalidSessionTransition, PreconditionNotMet, image_dimensions, logger
)

class SessionState(Enum):
    NO_IMAGE = "no_image"
    IMAGE_LOADED = "image_loaded"
    CROP_IN_PROGRESS = "crop_in_progress"
    CROP_COMPLETED = "crop_completed"

class EditSession:
    """
    In-memory state of one image being edited

    Transitions:
        NoImage -> ImageLoaded               load_image
        ImageLoaded/CropInProgress/
        CropCompleted -> CropInProgress       update_crop
        CropInProgress -> CropCompleted       complete_crop (non-empty)
        CropInProgress -> ImageLoaded         complete_crop (empty)

    Loading a new image from any state starts over at ImageLoaded with the
    crop cleared and the filters back at their identity values.
    """

    def __init__(self, session_id: Optional[str] = None):
        self.id = session_id or uuid.uuid4().hex
        self.state = SessionState.NO_IMAGE
        self.source_image: Optional[np.ndarray] = None
        self.file_name: Optional[str] = None
        self.display_size: Optional[DisplaySize] = None
        self.crop: Optional[CropRegion] = None
        self.completed_crop: Optional[CropRegion] = None
        self.filters: FilterState = IDENTITY_FILTERS
        self.created_at = time.time()
        self.updated_at = self.created_at

    @property
    def natural_size(self) -> Optional[Tuple[int, int]]:
        if self.source_image is None:
            return None
        return image_dimensions(self.source_image)

    @property
    def display_scale(self) -> Optional[Tuple[float, float]]:
        if self.source_image is None or self.display_size is None:
            return None
        return display_scale(self.natural_size, self.display_size)

    def _touch(self):
        self.updated_at = time.time()

    def _require_image(self, operation: str):
        if self.state == SessionState.NO_IMAGE:
            raise InvalidSessionTransition(f"Cannot {operation}: no image loaded")

    def load_image(self, image: np.ndarray, file_name: str,
                   display_size: Optional[DisplaySize] = None):
        """Load a decoded bitmap; the display size defaults to the natural size"""
        self.source_image = image
        self.file_name = file_name
        if display_size is None:
            w, h = image_dimensions(image)
            display_size = DisplaySize(w, h)
        self.display_size = display_size
        self.crop = None
        self.completed_crop = None
        self.filters = IDENTITY_FILTERS
        self.state = SessionState.IMAGE_LOADED
        self._touch()
        logger.debug(f"Session {self.id}: loaded {file_name} {image.shape[1]}x{image.shape[0]}")

    def set_display_size(self, display_size: DisplaySize):
        self._require_image("set display size")
        self.display_size = display_size
        self._touch()

    def update_crop(self, crop: CropRegion):
        """Record an in-progress crop drag"""
        self._require_image("update crop")
        self.crop = crop
        self.state = SessionState.CROP_IN_PROGRESS
        self._touch()

    def complete_crop(self, crop: Optional[CropRegion] = None):
        """
        Confirm the crop

        An empty rectangle (a click without a drag) does not count as a
        completed crop and drops the session back to ImageLoaded.
        """
        if self.state != SessionState.CROP_IN_PROGRESS:
            raise InvalidSessionTransition(
                f"Cannot complete crop from state {self.state.value}"
            )
        if crop is not None:
            self.crop = crop

        if self.crop is None or self.crop.is_empty:
            self.completed_crop = None
            self.state = SessionState.IMAGE_LOADED
        else:
            self.completed_crop = self.crop
            self.state = SessionState.CROP_COMPLETED
        self._touch()

    def set_filters(self, filters: FilterState):
        self._require_image("set filters")
        self.filters = filters
        self._touch()

    def reset_filters(self):
        self._require_image("reset filters")
        self.filters = IDENTITY_FILTERS
        self._touch()

    @property
    def can_export(self) -> bool:
        return (
            self.state == SessionState.CROP_COMPLETED
            and self.source_image is not None
            and self.completed_crop is not None
            and not self.completed_crop.is_empty
        )

    def require_exportable(self):
        if not self.can_export:
            raise PreconditionNotMet("Please select an image and crop it first")

    def natural_crop(self) -> Optional[CropRegion]:
        """Completed crop converted to natural pixel space"""
        if self.completed_crop is None or self.source_image is None:
            return None
        return to_natural_space(self.completed_crop, self.natural_size, self.display_size)

    def to_dict(self) -> dict:
        natural = self.natural_size
        natural_crop = self.natural_crop()
        return {
            "id": self.id,
            "state": self.state.value,
            "file_name": self.file_name,
            "natural_size": {"width": natural[0], "height": natural[1]} if natural else None,
            "display_size": (
                {"width": self.display_size.width, "height": self.display_size.height}
                if self.display_size else None
            ),
            "crop": self.crop.as_dict() if self.crop else None,
            "completed_crop": self.completed_crop.as_dict() if self.completed_crop else None,
            "natural_crop": natural_crop.as_dict() if natural_crop else None,
            "filters": self.filters.as_dict(),
            "filter_css": self.filters.css(),
            "can_export": self.can_export,
        }

class SessionStore:
    """Ephemeral registry of edit sessions; nothing is persisted"""

    def __init__(self, max_sessions: int = 100):
        self._sessions: Dict[str, EditSession] = {}
        self.max_sessions = max_sessions

    def create(self) -> EditSession:
        if len(self._sessions) >= self.max_sessions:
            # Drop the least recently touched session
            oldest = min(self._sessions.values(), key=lambda s: s.updated_at)
            logger.info(f"Session limit reached, discarding session {oldest.id}")
            del self._sessions[oldest.id]

        session = EditSession()
        self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> Optional[EditSession]:
        return self._sessions.get(session_id)

    def discard(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def __len__(self) -> int:
        return len(self._sessions)
