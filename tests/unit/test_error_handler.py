"""
Unit tests for export error handling
"""

import pytest

from pixelcrop.image_processing.utils.image_utils import (
    EncodingFailed, FormatValidationError, PreconditionNotMet, RenderSurfaceUnavailable
)
from pixelcrop.storage.models import PersistenceError, UploadFailed, UrlResolutionFailed
from pixelcrop.utils.error_handler import (
    FAILURE_NOTICE, PRECONDITION_NOTICE, ErrorType, ExportErrorHandler, classify_error
)


class TestClassification:

    @pytest.mark.parametrize("error,expected", [
        (PreconditionNotMet("x"), ErrorType.PRECONDITION_NOT_MET),
        (RenderSurfaceUnavailable("x"), ErrorType.RENDER_SURFACE_UNAVAILABLE),
        (EncodingFailed("x"), ErrorType.ENCODING_FAILED),
        (FormatValidationError("x"), ErrorType.VALIDATION_ERROR),
        (UploadFailed("x"), ErrorType.UPLOAD_FAILED),
        (PersistenceError("x"), ErrorType.UPLOAD_FAILED),
        (UrlResolutionFailed("x"), ErrorType.URL_RESOLUTION_FAILED),
        (RuntimeError("x"), ErrorType.UNEXPECTED_ERROR),
    ])
    def test_classify(self, error, expected):
        assert classify_error(error) == expected


class TestExportErrorHandler:

    def test_precondition_notice(self):
        handled = ExportErrorHandler().handle_error(PreconditionNotMet("no crop"))

        assert handled["success"] is False
        assert handled["error_type"] == "precondition_not_met"
        assert handled["notice"] == PRECONDITION_NOTICE == "Please select an image and crop it first"

    @pytest.mark.parametrize("error", [
        RenderSurfaceUnavailable("no surface"),
        EncodingFailed("codec"),
        UploadFailed("HTTP 500"),
        RuntimeError("unexpected"),
    ])
    def test_generic_failure_notice(self, error):
        handled = ExportErrorHandler().handle_error(error, {"format": "png"})

        assert handled["notice"] == FAILURE_NOTICE == "Failed to process image"
        assert handled["error_info"]["context"] == {"format": "png"}
        assert handled["error_info"]["error_message"] == str(error)

    def test_format_error_keeps_its_message(self):
        handled = ExportErrorHandler().handle_error(FormatValidationError("Unsupported export format 'gif'"))
        assert handled["notice"] == "Unsupported export format 'gif'"

    def test_statistics(self):
        handler = ExportErrorHandler()
        handler.handle_error(UploadFailed("a"))
        handler.handle_error(UploadFailed("b"))
        handler.handle_error(PreconditionNotMet("c"))

        stats = handler.get_error_statistics()

        assert stats["total_errors"] == 3
        assert stats["error_counts_by_type"] == {"upload_failed": 2, "precondition_not_met": 1}
        assert stats["recent_errors_count"] == 3
        assert stats["most_common_error"] == "upload_failed"

    def test_history_is_bounded(self):
        handler = ExportErrorHandler(max_history_size=2)
        for i in range(5):
            handler.handle_error(EncodingFailed(str(i)))

        assert len(handler.error_history) == 2
        assert handler.error_history[-1]["error_message"] == "4"

    def test_clear_error_history(self):
        handler = ExportErrorHandler()
        handler.handle_error(EncodingFailed("x"))
        handler.clear_error_history()

        stats = handler.get_error_statistics()
        assert stats["total_errors"] == 0
        assert stats["most_common_error"] is None
