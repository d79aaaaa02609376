from abc import ABC, abstractmethod
from typing import List, Optional

from .models import ImageAsset, NewImageAsset

class StorageBackend(ABC):
    """
    Blob storage plus the ``images`` metadata table

    Implementations hand out single-use upload URLs; the bytes themselves
    are written to that URL by the caller, not through this interface.
    """

    name = "abstract"

    @abstractmethod
    async def generate_upload_url(self) -> str:
        """Return a short-lived URL accepting one binary POST"""

    @abstractmethod
    async def insert_image(self, asset: NewImageAsset) -> str:
        """Insert a metadata record and return its assigned id"""

    @abstractmethod
    async def list_images(self) -> List[ImageAsset]:
        """All metadata records, in insertion order"""

    @abstractmethod
    async def get_url(self, storage_id: str) -> Optional[str]:
        """Fetchable URL for a blob, or None if it no longer exists"""

    async def close(self):
        """Release network or file resources"""
        return None
