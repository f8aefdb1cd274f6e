"""
Byte-range streaming of stored PDF files.

Only the single-range form `bytes=<start>-<end>` is honoured. An empty
start means 0 and an empty end means the last byte; suffix ranges
("last N bytes") are not supported. Anything else is unsatisfiable.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Dict, Optional

import anyio

from ..errors import InfraFailure, NotFound, RangeNotSatisfiable


logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"

_RANGE_RE = re.compile(r"^bytes=(\d*)-(\d*)$")


@dataclass(frozen=True)
class ByteRange:
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1


def parse_range(header: Optional[str], size: int) -> Optional[ByteRange]:
    """
    Resolve a Range header against an object of `size` bytes.

    Returns None when no range was requested. The end is clamped to the
    last byte of the object.
    """
    if not header:
        return None
    if "," in header:
        raise RangeNotSatisfiable(size, "Multiple ranges are not supported")

    match = _RANGE_RE.match(header.strip())
    if match is None:
        raise RangeNotSatisfiable(size, "Malformed range")

    start = int(match.group(1)) if match.group(1) else 0
    end = int(match.group(2)) if match.group(2) else size - 1
    if start > end or start >= size:
        raise RangeNotSatisfiable(size)
    return ByteRange(start=start, end=min(end, size - 1))


async def iter_file(
    path: Path, start: int, length: int, chunk_size: int
) -> AsyncIterator[bytes]:
    """Yield `length` bytes of `path` from `start`. The handle closes on every exit."""
    async with await anyio.open_file(path, "rb") as f:
        await f.seek(start)
        remaining = length
        while remaining > 0:
            chunk = await f.read(min(chunk_size, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            yield chunk


@dataclass
class FileStream:
    """
    A prepared response for one stored object: status, headers and body.

    Call `prime()` before sending headers. It pulls the first chunk so that
    a read failure can still be reported as a server error; once bytes have
    gone out, a failure only ends the stream.
    """

    status_code: int
    headers: Dict[str, str]
    path: Path
    start: int
    length: int
    chunk_size: int
    _first: Optional[bytes] = field(default=None, init=False)
    _source: Optional[AsyncIterator[bytes]] = field(default=None, init=False)

    async def prime(self) -> None:
        self._source = iter_file(self.path, self.start, self.length, self.chunk_size)
        try:
            self._first = await self._source.__anext__()
        except StopAsyncIteration:
            self._first = b""
        except OSError as exc:
            logger.error("Read stream error for %s: %s", self.path, exc)
            await self._source.aclose()  # type: ignore[attr-defined]
            raise InfraFailure("Failed to stream PDF") from exc

    async def body(self) -> AsyncIterator[bytes]:
        if self._source is None:
            await self.prime()
        source = self._source
        try:
            if self._first:
                yield self._first
            async for chunk in source:  # type: ignore[union-attr]
                yield chunk
        except OSError:
            logger.exception("Read stream error for %s after headers were sent", self.path)
            raise
        finally:
            await source.aclose()  # type: ignore[union-attr]


class RangeFileServer:
    """Resolves storage locators under a root directory and prepares streams."""

    def __init__(self, root: Path, chunk_size: int = 64 * 1024) -> None:
        self._root = Path(root)
        self._chunk_size = chunk_size

    async def resolve(self, locator: str) -> Path:
        root = await anyio.Path(self._root).resolve()
        path = await (root / locator.lstrip("/")).resolve()
        if not path.is_relative_to(root):
            raise InfraFailure(f"Invalid stored document path: {locator}")
        return Path(path)

    async def open(self, locator: str, range_header: Optional[str] = None) -> FileStream:
        path = anyio.Path(await self.resolve(locator))
        if not await path.is_file():
            raise NotFound("File not found on server")

        size = (await path.stat()).st_size
        byte_range = parse_range(range_header, size)

        headers = {"Accept-Ranges": "bytes", "Content-Type": PDF_MEDIA_TYPE}
        if byte_range is None:
            headers["Content-Length"] = str(size)
            return FileStream(200, headers, Path(path), 0, size, self._chunk_size)

        headers["Content-Range"] = f"bytes {byte_range.start}-{byte_range.end}/{size}"
        headers["Content-Length"] = str(byte_range.length)
        return FileStream(
            206, headers, Path(path), byte_range.start, byte_range.length, self._chunk_size
        )
