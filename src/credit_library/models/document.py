from __future__ import annotations

from datetime import datetime
from typing import ClassVar, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .base import DBSerializableModel, utcnow


class StoredDocument(DBSerializableModel):
    """
    PDF metadata. The bytes live on disk under the configured upload root;
    `storage_key` is the path relative to that root.
    """

    collection_name: ClassVar[str] = "pdfs"

    id: Optional[str] = Field(default=None)
    filename: str
    title: str
    storage_key: str
    cover_image: Optional[str] = None
    description: str = ""
    rating: float = Field(default=0, ge=0, le=5)
    tags: List[str] = Field(default_factory=list)
    size: int = 0
    downloads: int = 0
    favorites_count: int = 0
    owner_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class DocumentDetails(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    document: StoredDocument = Field(alias="pdf")
    is_favorite: bool = Field(default=False, alias="isFavorite")
    similar: List[StoredDocument] = Field(default_factory=list)
