from dataclasses import dataclass, field
from typing import Any, Dict, Optional

class PersistenceError(Exception):
    """Base exception for storage and persistence errors"""
    pass

class UploadFailed(PersistenceError):
    """A persistence step (upload target, blob write or insert) failed"""
    pass

class UrlResolutionFailed(PersistenceError):
    """A stored blob reference could not be resolved to a URL"""
    pass

@dataclass(frozen=True)
class ImageAsset:
    """Metadata record of one persisted raster export"""
    id: str
    storage_id: str
    name: str
    format: str
    owner_ref: Optional[str] = None
    # Set when the listing already resolved the download URL; never stored
    url: Optional[str] = field(default=None, compare=False)
    url_listed: bool = field(default=False, compare=False)

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "ImageAsset":
        """Build from the stored document shape"""
        return cls(
            id=doc["_id"],
            storage_id=doc["storageId"],
            name=doc["name"],
            format=doc["format"],
            owner_ref=doc.get("userId"),
            url=doc.get("url"),
            url_listed="url" in doc,
        )

    def to_document(self) -> Dict[str, Any]:
        doc = {
            "_id": self.id,
            "storageId": self.storage_id,
            "name": self.name,
            "format": self.format,
        }
        if self.owner_ref is not None:
            doc["userId"] = self.owner_ref
        return doc

@dataclass(frozen=True)
class NewImageAsset:
    """Insert payload; the store assigns the id"""
    storage_id: str
    name: str
    format: str
    owner_ref: Optional[str] = None

    def to_args(self) -> Dict[str, Any]:
        return {"storageId": self.storage_id, "name": self.name, "format": self.format}

@dataclass(frozen=True)
class UrlResolution:
    """Outcome of resolving one blob reference"""
    url: Optional[str] = None
    error: Optional[UrlResolutionFailed] = None

    @property
    def ok(self) -> bool:
        return self.error is None

@dataclass(frozen=True)
class ListedAsset:
    """Gallery entry: a record and its independently resolved URL"""
    asset: ImageAsset
    resolution: UrlResolution = field(default_factory=UrlResolution)

    @property
    def url(self) -> Optional[str]:
        return self.resolution.url

    def to_dict(self) -> Dict[str, Any]:
        doc = self.asset.to_document()
        doc["url"] = self.url
        return doc
