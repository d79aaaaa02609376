import asyncio
import json
import os
import secrets
import time
import uuid
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import aiofiles
import aiofiles.os

from .base import StorageBackend
from .models import ImageAsset, NewImageAsset, UploadFailed
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

class LocalStorageBackend(StorageBackend):
    """
    File-system storage backend

    Layout under ``root``::

        blobs/<storage_id>        raw bytes
        blobs/<storage_id>.meta   {"contentType": ..., "size": ...}
        images.json               metadata table, insertion order

    Upload URLs point at this service's own ``/storage/upload/{token}``
    route; each token accepts one write and expires after ``upload_ttl``
    seconds.
    """

    name = "local"

    def __init__(self, root: str, public_base_url: str, upload_ttl: int = 3600):
        self.root = Path(root)
        self.blob_dir = self.root / "blobs"
        self.table_path = self.root / "images.json"
        self.public_base_url = public_base_url.rstrip("/")
        self.upload_ttl = upload_ttl
        self._upload_tokens: Dict[str, float] = {}
        self._table_lock = asyncio.Lock()

        os.makedirs(self.blob_dir, exist_ok=True)
        logger.info(f"LocalStorageBackend initialized at {self.root}")

    async def generate_upload_url(self) -> str:
        self._expire_tokens()
        token = secrets.token_urlsafe(24)
        self._upload_tokens[token] = time.time() + self.upload_ttl
        return f"{self.public_base_url}/storage/upload/{token}"

    def _expire_tokens(self):
        now = time.time()
        expired = [t for t, expiry in self._upload_tokens.items() if expiry < now]
        for token in expired:
            del self._upload_tokens[token]

    async def accept_upload(self, token: str, data: bytes, content_type: str) -> str:
        """
        Store the body of a POST to an upload URL

        Returns:
            The new blob's storage id
        """
        expiry = self._upload_tokens.pop(token, None)
        if expiry is None:
            raise UploadFailed("Unknown or already used upload URL")
        if expiry < time.time():
            raise UploadFailed("Upload URL expired")

        storage_id = uuid.uuid4().hex
        blob_path = self.blob_dir / storage_id
        async with aiofiles.open(blob_path, "wb") as f:
            await f.write(data)
        async with aiofiles.open(self._meta_path(storage_id), "w", encoding="utf-8") as f:
            await f.write(json.dumps({"contentType": content_type, "size": len(data)}))

        logger.debug(f"Stored blob {storage_id} ({len(data)} bytes, {content_type})")
        return storage_id

    def _meta_path(self, storage_id: str) -> Path:
        return self.blob_dir / f"{storage_id}.meta"

    def _blob_path(self, storage_id: str) -> Optional[Path]:
        # storage ids are uuid hex; reject anything that could leave blob_dir
        if not storage_id or not storage_id.isalnum():
            return None
        return self.blob_dir / storage_id

    async def open_blob(self, storage_id: str) -> Optional[Tuple[Path, str]]:
        """Path and content type of a stored blob, or None"""
        path = self._blob_path(storage_id)
        if path is None or not await aiofiles.os.path.exists(path):
            return None

        content_type = "application/octet-stream"
        meta_path = self._meta_path(storage_id)
        if await aiofiles.os.path.exists(meta_path):
            async with aiofiles.open(meta_path, "r", encoding="utf-8") as f:
                content_type = json.loads(await f.read()).get("contentType", content_type)
        return path, content_type

    async def _read_table(self) -> List[dict]:
        if not await aiofiles.os.path.exists(self.table_path):
            return []
        async with aiofiles.open(self.table_path, "r", encoding="utf-8") as f:
            content = await f.read()
        return json.loads(content) if content.strip() else []

    async def insert_image(self, asset: NewImageAsset) -> str:
        record = ImageAsset(
            id=uuid.uuid4().hex,
            storage_id=asset.storage_id,
            name=asset.name,
            format=asset.format,
            owner_ref=asset.owner_ref,
        )
        async with self._table_lock:
            table = await self._read_table()
            table.append(record.to_document())
            tmp_path = self.table_path.with_suffix(".json.tmp")
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(table, indent=2))
            await aiofiles.os.replace(tmp_path, self.table_path)
        return record.id

    async def list_images(self) -> List[ImageAsset]:
        table = await self._read_table()
        return [ImageAsset.from_document(doc) for doc in table]

    async def get_url(self, storage_id: str) -> Optional[str]:
        path = self._blob_path(storage_id)
        if path is None or not await aiofiles.os.path.exists(path):
            return None
        return f"{self.public_base_url}/storage/blobs/{storage_id}"
