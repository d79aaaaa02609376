"""
Asset persistence: storage backends and the persistence gateway
"""

from .base import StorageBackend
from .gateway import AssetPersistenceGateway, BlobUploader
from .local import LocalStorageBackend
from .models import (
    ImageAsset,
    ListedAsset,
    NewImageAsset,
    PersistenceError,
    UploadFailed,
    UrlResolution,
    UrlResolutionFailed,
)
from .remote import RemoteStorageBackend

def create_storage_backend(settings) -> StorageBackend:
    """Build the storage backend selected by ``settings.storage_backend``"""
    if settings.storage_backend == "remote":
        if not settings.remote_storage_url:
            raise ValueError("REMOTE_STORAGE_URL is required for the remote storage backend")
        return RemoteStorageBackend(
            settings.remote_storage_url,
            functions=settings.storage_functions,
            timeout=settings.storage_timeout,
        )
    return LocalStorageBackend(
        settings.storage_dir,
        settings.public_base_url,
        upload_ttl=settings.upload_url_ttl_seconds,
    )

__all__ = [
    'StorageBackend',
    'AssetPersistenceGateway',
    'BlobUploader',
    'LocalStorageBackend',
    'RemoteStorageBackend',
    'ImageAsset',
    'ListedAsset',
    'NewImageAsset',
    'PersistenceError',
    'UploadFailed',
    'UrlResolution',
    'UrlResolutionFailed',
    'create_storage_backend',
]
