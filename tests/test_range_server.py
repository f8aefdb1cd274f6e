from __future__ import annotations

import logging

import pytest

from credit_library.errors import InfraFailure, NotFound, RangeNotSatisfiable
from credit_library.services import range_server
from credit_library.services.range_server import ByteRange, RangeFileServer, parse_range


CONTENT = bytes(range(256)) * 4  # 1024 bytes


@pytest.mark.parametrize(
    "header, expected",
    [
        (None, None),
        ("", None),
        ("bytes=0-99", ByteRange(0, 99)),
        ("bytes=900-2000", ByteRange(900, 999)),
        ("bytes=500-", ByteRange(500, 999)),
        ("bytes=-99", ByteRange(0, 99)),
        ("bytes=999-999", ByteRange(999, 999)),
    ],
)
def test_parse_range_satisfiable(header, expected):
    assert parse_range(header, 1000) == expected


@pytest.mark.parametrize(
    "header",
    ["bytes=5000-", "bytes=0-10,20-30", "bytes=10-5", "items=0-10", "bytes=abc-", "bytes=1000-1000"],
)
def test_parse_range_unsatisfiable_advertises_size(header):
    with pytest.raises(RangeNotSatisfiable) as exc_info:
        parse_range(header, 1000)
    assert exc_info.value.status_code == 416
    assert exc_info.value.headers == {"Content-Range": "bytes */1000"}


def test_byte_range_length():
    assert ByteRange(0, 99).length == 100


@pytest.fixture
def server(tmp_path):
    (tmp_path / "pdfs").mkdir()
    (tmp_path / "pdfs" / "book.pdf").write_bytes(CONTENT)
    (tmp_path / "pdfs" / "empty.pdf").write_bytes(b"")
    return RangeFileServer(tmp_path, chunk_size=100)


async def collect(stream) -> bytes:
    await stream.prime()
    return b"".join([chunk async for chunk in stream.body()])


@pytest.mark.asyncio
async def test_full_object_without_range(server):
    stream = await server.open("pdfs/book.pdf")

    assert stream.status_code == 200
    assert stream.headers["Content-Length"] == "1024"
    assert stream.headers["Accept-Ranges"] == "bytes"
    assert stream.headers["Content-Type"] == "application/pdf"
    assert "Content-Range" not in stream.headers
    assert await collect(stream) == CONTENT


@pytest.mark.asyncio
async def test_partial_object(server):
    stream = await server.open("pdfs/book.pdf", "bytes=150-399")

    assert stream.status_code == 206
    assert stream.headers["Content-Range"] == "bytes 150-399/1024"
    assert stream.headers["Content-Length"] == "250"
    assert await collect(stream) == CONTENT[150:400]


@pytest.mark.asyncio
async def test_clamped_range_streams_to_end(server):
    stream = await server.open("/pdfs/book.pdf", "bytes=1000-5000")

    assert stream.headers["Content-Range"] == "bytes 1000-1023/1024"
    assert await collect(stream) == CONTENT[1000:]


@pytest.mark.asyncio
async def test_empty_object_streams_nothing(server):
    stream = await server.open("pdfs/empty.pdf")

    assert stream.headers["Content-Length"] == "0"
    assert await collect(stream) == b""


@pytest.mark.asyncio
async def test_missing_object_is_not_found(server):
    with pytest.raises(NotFound):
        await server.open("pdfs/missing.pdf", "bytes=0-1")


@pytest.mark.asyncio
async def test_locator_cannot_escape_root(server):
    with pytest.raises(InfraFailure):
        await server.open("../outside.pdf")


@pytest.mark.asyncio
async def test_read_failure_before_first_chunk_is_infra_failure(server, tmp_path):
    stream = await server.open("pdfs/book.pdf")
    (tmp_path / "pdfs" / "book.pdf").unlink()

    with pytest.raises(InfraFailure):
        await stream.prime()


@pytest.mark.asyncio
async def test_abandoned_stream_releases_file_handle(server):
    stream = await server.open("pdfs/book.pdf")
    await stream.prime()
    body = stream.body()

    first = await body.__anext__()
    await body.aclose()

    assert first == CONTENT[:100]
    assert stream._source.ag_running is False
    assert stream._source.ag_frame is None


@pytest.mark.asyncio
async def test_read_failure_after_first_chunk_ends_stream(server, monkeypatch, caplog):
    closed = []

    async def failing_reader(path, start, length, chunk_size):
        try:
            yield CONTENT[:100]
            raise OSError("device went away")
        finally:
            closed.append(True)

    monkeypatch.setattr(range_server, "iter_file", failing_reader)
    stream = await server.open("pdfs/book.pdf")
    await stream.prime()

    received = []
    with caplog.at_level(logging.ERROR, logger="credit_library.services.range_server"):
        with pytest.raises(OSError):
            async for chunk in stream.body():
                received.append(chunk)

    assert received == [CONTENT[:100]]
    assert closed == [True]
    assert "after headers were sent" in caplog.text
