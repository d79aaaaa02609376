import asyncio
from typing import Any, Dict, List, Optional

import aiohttp

from .base import StorageBackend
from .models import ImageAsset, NewImageAsset, PersistenceError, UploadFailed
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_FUNCTIONS = {
    "generate_upload_url": "images:generateUploadUrl",
    "save_image": "images:saveImage",
    "list_images": "images:listImages",
    # Fallback for listings that come back without a url per record
    "get_url": "images:getUrl",
}

class RemoteStorageBackend(StorageBackend):
    """
    Client for a hosted backend-as-a-service function API

    Functions are invoked with ``POST {base_url}/api/{mutation|query}`` and a
    JSON body ``{"path": ..., "args": ..., "format": "json"}``. Replies are
    ``{"status": "success", "value": ...}`` or
    ``{"status": "error", "errorMessage": ...}``.
    """

    name = "remote"

    def __init__(self, base_url: str, functions: Optional[Dict[str, str]] = None,
                 timeout: int = 30):
        self.base_url = base_url.rstrip("/")
        self.functions = dict(DEFAULT_FUNCTIONS)
        if functions:
            self.functions.update(functions)
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None
        logger.info(f"RemoteStorageBackend initialized for {self.base_url}")

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

    @staticmethod
    def unwrap_response(payload: Any, path: str) -> Any:
        """Extract ``value`` from a function reply or raise PersistenceError"""
        if not isinstance(payload, dict):
            raise PersistenceError(f"{path}: malformed response")
        status = payload.get("status")
        if status == "success":
            return payload.get("value")
        if status == "error":
            raise PersistenceError(f"{path}: {payload.get('errorMessage', 'unknown error')}")
        raise PersistenceError(f"{path}: unexpected status {status!r}")

    async def _call(self, kind: str, function: str, args: Optional[Dict[str, Any]] = None) -> Any:
        path = self.functions[function]
        url = f"{self.base_url}/api/{kind}"
        body = {"path": path, "args": args or {}, "format": "json"}

        try:
            async with self._get_session().post(url, json=body) as response:
                if response.status >= 400:
                    detail = await response.text()
                    raise PersistenceError(f"{path}: HTTP {response.status}: {detail}")
                payload = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise PersistenceError(f"{path}: request failed: {str(e)}") from e

        return self.unwrap_response(payload, path)

    async def generate_upload_url(self) -> str:
        try:
            url = await self._call("mutation", "generate_upload_url")
        except PersistenceError as e:
            raise UploadFailed(str(e)) from e
        if not isinstance(url, str) or not url:
            raise UploadFailed("Upload URL missing from response")
        return url

    async def insert_image(self, asset: NewImageAsset) -> str:
        try:
            record_id = await self._call("mutation", "save_image", asset.to_args())
        except PersistenceError as e:
            raise UploadFailed(str(e)) from e
        if not record_id:
            raise UploadFailed("Record id missing from response")
        return str(record_id)

    async def list_images(self) -> List[ImageAsset]:
        """Records as listed, keeping the ``url`` the query resolves for each"""
        documents = await self._call("query", "list_images")
        return [ImageAsset.from_document(doc) for doc in documents or []]

    async def get_url(self, storage_id: str) -> Optional[str]:
        return await self._call("query", "get_url", {"storageId": storage_id})
