import logging
from typing import Dict, Any, List, Optional
from enum import Enum
import traceback
import time

from ..image_processing.utils.image_utils import (
    EncodingFailed, FormatValidationError, PreconditionNotMet,
    RenderSurfaceUnavailable, ValidationError
)
from ..storage.models import UploadFailed, UrlResolutionFailed, PersistenceError

logger = logging.getLogger(__name__)

PRECONDITION_NOTICE = "Please select an image and crop it first"
FAILURE_NOTICE = "Failed to process image"

class ErrorType(Enum):
    PRECONDITION_NOT_MET = "precondition_not_met"
    RENDER_SURFACE_UNAVAILABLE = "render_surface_unavailable"
    ENCODING_FAILED = "encoding_failed"
    VALIDATION_ERROR = "validation_error"
    UPLOAD_FAILED = "upload_failed"
    URL_RESOLUTION_FAILED = "url_resolution_failed"
    UNEXPECTED_ERROR = "unexpected_error"

_ERROR_TYPES = [
    (PreconditionNotMet, ErrorType.PRECONDITION_NOT_MET),
    (RenderSurfaceUnavailable, ErrorType.RENDER_SURFACE_UNAVAILABLE),
    (EncodingFailed, ErrorType.ENCODING_FAILED),
    (ValidationError, ErrorType.VALIDATION_ERROR),
    (UrlResolutionFailed, ErrorType.URL_RESOLUTION_FAILED),
    (UploadFailed, ErrorType.UPLOAD_FAILED),
    (PersistenceError, ErrorType.UPLOAD_FAILED),
]

def classify_error(error: Exception) -> ErrorType:
    """Map an exception onto an ErrorType"""
    for exc_class, error_type in _ERROR_TYPES:
        if isinstance(error, exc_class):
            return error_type
    return ErrorType.UNEXPECTED_ERROR

class ExportErrorHandler:
    """
    Central handling for failures of user-triggered actions

    Every failure is logged, counted and turned into one user notice. There
    is no retry logic: the user retries by repeating the action.
    """

    def __init__(self, max_history_size: int = 100):
        self.error_counts: Dict[ErrorType, int] = {}
        self.error_history: List[Dict[str, Any]] = []
        self.max_history_size = max_history_size

    def handle_error(self, error: Exception,
                     context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Log and record an error and return the notice to show the user"""
        error_type = classify_error(error)
        error_info = {
            "error_type": error_type.value,
            "error_message": str(error),
            "traceback": traceback.format_exc(),
            "context": context or {},
            "timestamp": time.time()
        }

        if error_type in [ErrorType.RENDER_SURFACE_UNAVAILABLE, ErrorType.UNEXPECTED_ERROR]:
            logger.error(f"{error_type.value}: {str(error)}", exc_info=error)
        elif error_type in [ErrorType.ENCODING_FAILED, ErrorType.UPLOAD_FAILED]:
            logger.error(f"{error_type.value}: {str(error)}")
        else:
            logger.warning(f"{error_type.value}: {str(error)}")

        self.error_counts[error_type] = self.error_counts.get(error_type, 0) + 1
        self._add_to_history(error_info)

        return {
            "success": False,
            "error_type": error_type.value,
            "notice": self.user_notice(error_type, error),
            "error_info": error_info,
        }

    @staticmethod
    def user_notice(error_type: ErrorType, error: Exception) -> str:
        if error_type == ErrorType.PRECONDITION_NOT_MET:
            return PRECONDITION_NOTICE
        if isinstance(error, FormatValidationError):
            return str(error)
        return FAILURE_NOTICE

    def _add_to_history(self, error_info: Dict[str, Any]):
        """Add error to history with size limit"""
        self.error_history.append(error_info)
        if len(self.error_history) > self.max_history_size:
            self.error_history = self.error_history[-self.max_history_size:]

    def get_error_statistics(self) -> Dict[str, Any]:
        """Get error statistics"""
        total_errors = sum(self.error_counts.values())
        recent_errors = [
            e for e in self.error_history
            if time.time() - e.get("timestamp", 0) < 3600  # Last hour
        ]

        return {
            "total_errors": total_errors,
            "error_counts_by_type": {k.value: v for k, v in self.error_counts.items()},
            "recent_errors_count": len(recent_errors),
            "most_common_error": (
                max(self.error_counts.items(), key=lambda x: x[1])[0].value
                if self.error_counts else None
            ),
        }

    def clear_error_history(self):
        """Clear error history and reset counters"""
        self.error_history.clear()
        self.error_counts.clear()
        logger.info("Error history and counters cleared")
