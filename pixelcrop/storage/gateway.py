import asyncio
import time
from typing import List, Optional

import aiohttp

from .base import StorageBackend
from .models import (
    ImageAsset, ListedAsset, NewImageAsset, PersistenceError, UploadFailed,
    UrlResolution, UrlResolutionFailed
)
from ..image_processing.core.artifacts import ExportArtifact, ExportFormat
from ..image_processing.utils.image_utils import FormatValidationError
from ..utils.logging_config import get_logger, log_performance

logger = get_logger(__name__)

class BlobUploader:
    """Writes artifact bytes to a single-use upload URL"""

    def __init__(self, timeout: int = 60):
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        self._get_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def upload(self, upload_url: str, data: bytes, content_type: str) -> str:
        """
        POST raw bytes to the upload URL

        Returns:
            The ``storageId`` from the JSON response body
        """
        headers = {"Content-Type": content_type}
        try:
            async with self._get_session().post(upload_url, data=data, headers=headers) as response:
                if response.status >= 400:
                    detail = await response.text()
                    raise UploadFailed(f"Blob upload failed (HTTP {response.status}): {detail}")
                payload = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise UploadFailed(f"Blob upload failed: {str(e)}") from e

        storage_id = payload.get("storageId") if isinstance(payload, dict) else None
        if not storage_id:
            raise UploadFailed("Upload response did not include a storageId")
        return storage_id

class AssetPersistenceGateway:
    """Persists raster exports and lists them for the gallery"""

    def __init__(self, storage: StorageBackend, uploader: Optional[BlobUploader] = None):
        self.storage = storage
        self.uploader = uploader or BlobUploader()

    @log_performance(logger, "asset persist")
    async def persist(self, artifact: ExportArtifact, display_name: str,
                      export_format: ExportFormat, owner_ref: Optional[str] = None) -> str:
        """
        Upload a raster artifact and record its metadata

        Each step depends on the previous one; the first failure aborts the
        whole operation with UploadFailed. Nothing is retried or rolled back.

        Returns:
            The id assigned to the new metadata record
        """
        export_format = ExportFormat.parse(export_format)
        if not export_format.is_raster:
            raise FormatValidationError(f"{export_format.value} exports are not persisted")

        try:
            upload_url = await self.storage.generate_upload_url()
            storage_id = await self.uploader.upload(upload_url, artifact.data, artifact.mime_type)
            asset_id = await self.storage.insert_image(NewImageAsset(
                storage_id=storage_id,
                name=display_name,
                format=export_format.value,
                owner_ref=owner_ref,
            ))
        except UploadFailed:
            raise
        except PersistenceError as e:
            raise UploadFailed(str(e)) from e

        logger.log_persistence_result(asset_id, storage_id, export_format.value)
        return asset_id

    async def _resolve(self, record: ImageAsset) -> Optional[str]:
        if record.url_listed:
            return record.url
        try:
            return await self.storage.get_url(record.storage_id)
        except Exception as e:
            raise UrlResolutionFailed(f"Could not resolve {record.storage_id}: {str(e)}") from e

    async def list(self) -> List[ListedAsset]:
        """
        All records with their URLs resolved concurrently

        URLs the backend already returned with the listing are used as is;
        only the remaining records are looked up through ``get_url``.

        A failed resolution is captured on its own entry; it never removes the
        record or aborts the other resolutions.
        """
        start_time = time.time()
        records = await self.storage.list_images()
        outcomes = await asyncio.gather(
            *(self._resolve(record) for record in records),
            return_exceptions=True
        )

        listed = []
        failures = 0
        for record, outcome in zip(records, outcomes):
            if isinstance(outcome, UrlResolutionFailed):
                failures += 1
                logger.warning(str(outcome))
                listed.append(ListedAsset(record, UrlResolution(error=outcome)))
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                listed.append(ListedAsset(record, UrlResolution(url=outcome)))

        logger.log_performance_metric("gallery listing", time.time() - start_time, "seconds")
        if failures:
            logger.warning(f"{failures} of {len(records)} asset URLs could not be resolved")
        return listed

    async def close(self):
        await self.uploader.close()
        await self.storage.close()
