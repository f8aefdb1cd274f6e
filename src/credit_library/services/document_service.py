from __future__ import annotations

import logging
import re
import time
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import anyio

from ..db.base import BaseDBManager
from ..errors import InfraFailure, InvalidInput, NotFound
from ..models.document import DocumentDetails, StoredDocument
from ..models.user import UserAccount
from .credit_ledger import MAX_UPDATE_ATTEMPTS, CreditLedger
from .range_server import FileStream, RangeFileServer


logger = logging.getLogger(__name__)

PDF_DIR = "pdfs"
SIMILAR_LIMIT = 12


class DocumentService:
    """
    PDF catalogue: stores bytes under the upload root, serves them through
    the range file server and charges credits for downloads.
    """

    def __init__(
        self,
        db: BaseDBManager,
        ledger: CreditLedger,
        file_server: RangeFileServer,
        download_cost: int,
    ) -> None:
        self._db = db
        self._ledger = ledger
        self._files = file_server
        self._download_cost = download_cost

    @staticmethod
    def _storage_name(filename: str) -> str:
        path = Path(filename)
        base = re.sub(r"\s+", "_", path.stem) or "document"
        return f"{int(time.time() * 1000)}_{base}{path.suffix}"

    async def add_document(
        self,
        content: bytes,
        filename: str,
        title: Optional[str] = None,
        tags: Optional[List[str]] = None,
        description: str = "",
        rating: float = 0,
        owner_id: Optional[str] = None,
    ) -> StoredDocument:
        if not content:
            raise InvalidInput("No PDF uploaded")

        storage_key = f"{PDF_DIR}/{self._storage_name(filename)}"
        target = await self._files.resolve(storage_key)
        await anyio.Path(target.parent).mkdir(parents=True, exist_ok=True)
        await anyio.Path(target).write_bytes(content)

        document = StoredDocument(
            filename=filename,
            title=title or filename,
            storage_key=storage_key,
            description=description,
            rating=max(0, min(5, rating)),
            tags=[t.strip() for t in (tags or []) if t and t.strip()],
            size=len(content),
            owner_id=owner_id,
        )
        try:
            return await self._db.add_document(document)
        except Exception:
            await anyio.Path(target).unlink(missing_ok=True)
            raise

    async def get_document(self, document_id: str) -> StoredDocument:
        document = await self._db.get_document(document_id)
        if document is None:
            raise NotFound("PDF not found")
        return document

    async def list_documents(self) -> Iterable[StoredDocument]:
        return await self._db.list_documents()

    async def open_stream(
        self, document_id: str, range_header: Optional[str] = None
    ) -> FileStream:
        document = await self.get_document(document_id)
        stream = await self._files.open(document.storage_key, range_header)
        await stream.prime()
        return stream

    async def charge_download(self, document_id: str, user_id: str) -> int:
        """Deduct the download cost and count the download. Returns the remaining balance."""
        document = await self.get_document(document_id)
        remaining = await self._ledger.deduct(
            user_id,
            self._download_cost,
            f'Download "{document.title or document.filename}"',
            correlation_id=document.id,
        )
        await self._db.increment_document_downloads(document_id)
        return remaining

    async def list_tags(self) -> List[str]:
        return await self._db.list_document_tags()

    async def get_details(
        self, document_id: str, viewer: Optional[UserAccount] = None
    ) -> DocumentDetails:
        """A document, whether `viewer` has favorited it, and newest documents sharing a tag."""
        document = await self.get_document(document_id)
        similar = await self._db.list_similar_documents(
            document_id, document.tags, SIMILAR_LIMIT
        )
        return DocumentDetails(
            document=document,
            is_favorite=viewer is not None and document_id in viewer.favorites,
            similar=list(similar),
        )

    async def toggle_favorite(self, document_id: str, user_id: str) -> Tuple[bool, int]:
        """
        Flip whether `user_id` favorites the document. Returns the new state
        and the document's favorites count.
        """
        await self.get_document(document_id)

        for _ in range(MAX_UPDATE_ATTEMPTS):
            if await self._db.add_favorite(user_id, document_id):
                favorited, delta = True, 1
            elif await self._db.remove_favorite(user_id, document_id):
                favorited, delta = False, -1
            elif await self._db.get_user(user_id) is None:
                raise NotFound("User not found")
            else:
                continue

            document = await self._db.adjust_document_favorites(document_id, delta)
            if document is None:
                raise NotFound("PDF not found")
            return favorited, document.favorites_count

        logger.error("Favorite toggle for user %s kept losing update races", user_id)
        raise InfraFailure("favorite toggle contention")

    async def delete_document(self, document_id: str) -> StoredDocument:
        document = await self._db.delete_document(document_id)
        if document is None:
            raise NotFound("PDF not found")

        for locator in (document.storage_key, document.cover_image):
            if not locator:
                continue
            path = await self._files.resolve(locator)
            try:
                await anyio.Path(path).unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Could not remove stored file %s: %s", path, exc)
        return document
