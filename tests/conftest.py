"""
Pytest configuration and shared fixtures

This module provides common fixtures and configuration for all tests.
"""

import os
import tempfile
from io import BytesIO

# Settings are read when pixelcrop.main is imported
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("STORAGE_DIR", tempfile.mkdtemp(prefix="pixelcrop-test-"))

import cv2
import numpy as np
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from pixelcrop.core.config import Settings
from pixelcrop.core.services.editor_service import ImageEditorService
from pixelcrop.image_processing.core.export_pipeline import ExportPipeline
from pixelcrop.image_processing.utils.image_utils import EXIF_ORIENTATION_TAG
from pixelcrop.main import app, get_editor_service
from pixelcrop.storage.gateway import AssetPersistenceGateway, BlobUploader
from pixelcrop.storage.local import LocalStorageBackend
from pixelcrop.utils.logging_config import setup_logging


# Configure test logging
setup_logging(log_level="DEBUG")


class LoopbackUploader(BlobUploader):
    """Delivers uploads straight to a LocalStorageBackend instead of over HTTP"""

    def __init__(self, storage: LocalStorageBackend):
        super().__init__()
        self.storage = storage
        self.calls = []

    async def upload(self, upload_url: str, data: bytes, content_type: str) -> str:
        self.calls.append({"url": upload_url, "content_type": content_type, "size": len(data)})
        token = upload_url.rsplit("/", 1)[-1]
        return await self.storage.accept_upload(token, data, content_type)


def make_test_image(width: int = 800, height: int = 600) -> np.ndarray:
    """Deterministic BGR gradient image"""
    xs = np.linspace(0, 255, width, dtype=np.float32)
    ys = np.linspace(0, 255, height, dtype=np.float32)
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[:, :, 0] = xs[np.newaxis, :].astype(np.uint8)
    image[:, :, 1] = ys[:, np.newaxis].astype(np.uint8)
    image[:, :, 2] = 128
    return image


def make_two_tone_jpeg(orientation=None) -> bytes:
    """200x100 JPEG as stored on disk: left half red, right half blue"""
    img = Image.new("RGB", (200, 100), (0, 0, 255))
    img.paste((255, 0, 0), (0, 0, 100, 100))

    buffer = BytesIO()
    if orientation is None:
        img.save(buffer, "JPEG", quality=95)
    else:
        exif = Image.Exif()
        exif[EXIF_ORIENTATION_TAG] = orientation
        img.save(buffer, "JPEG", quality=95, exif=exif)
    return buffer.getvalue()


@pytest.fixture
def two_tone_jpeg():
    """Factory for the two-tone JPEG, optionally tagged with an EXIF orientation"""
    return make_two_tone_jpeg


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings for testing"""
    return Settings(
        environment="testing",
        debug=True,
        log_level="DEBUG",
        storage_dir=str(tmp_path / "storage"),
        public_base_url="http://testserver",
    )


@pytest.fixture
def sample_image() -> np.ndarray:
    """800x600 BGR test image"""
    return make_test_image()


@pytest.fixture
def sample_image_bytes(sample_image) -> bytes:
    """Sample image encoded as PNG"""
    _, buffer = cv2.imencode('.png', sample_image)
    return buffer.tobytes()


@pytest.fixture
def local_storage(test_settings) -> LocalStorageBackend:
    return LocalStorageBackend(
        test_settings.storage_dir,
        test_settings.public_base_url,
        upload_ttl=test_settings.upload_url_ttl_seconds,
    )


@pytest.fixture
def loopback_uploader(local_storage) -> LoopbackUploader:
    return LoopbackUploader(local_storage)


@pytest.fixture
def gateway(local_storage, loopback_uploader) -> AssetPersistenceGateway:
    return AssetPersistenceGateway(local_storage, loopback_uploader)


@pytest.fixture
def editor_service(gateway) -> ImageEditorService:
    return ImageEditorService(gateway, pipeline=ExportPipeline())


@pytest.fixture
def client(editor_service):
    """Test client wired to a local storage backend in a temp directory"""
    app.dependency_overrides[get_editor_service] = lambda: editor_service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
