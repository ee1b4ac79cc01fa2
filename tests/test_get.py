"""
Get and head requests: payload, ranges, conditional headers and metadata validation.
"""
from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from gcs_store import (
    Attribute,
    GetOptions,
    GetRange,
    GoogleCloudStorage,
    Metadata,
    MetadataError,
    NotFoundError,
    NotModifiedError,
    PreconditionError,
)

pytestmark = pytest.mark.anyio


async def test_get_returns_payload_and_meta(store, server):
    obj = server.write("dir/file.txt", b"hello world", {"content-type": "text/plain", "x-goog-meta-owner": "me"})

    result = await store.get("dir/file.txt")

    assert result.payload == b"hello world"
    assert result.range == (0, 11)
    assert result.meta.location == "dir/file.txt"
    assert result.meta.size == 11
    assert result.meta.e_tag == obj.etag
    assert result.meta.version == str(obj.generation)
    assert result.meta.last_modified == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert result.attributes[Attribute.CONTENT_TYPE] == "text/plain"
    assert result.attributes[Metadata("owner")] == "me"


async def test_head_reads_no_body(store, server):
    server.write("obj", b"12345")

    meta = await store.head("obj")

    assert meta.size == 5
    assert server.requests[-1].method == "HEAD"


async def test_get_with_head_option_returns_empty_payload(store, server):
    server.write("obj", b"12345")

    result = await store.get("obj", GetOptions(head=True))

    assert result.payload == b""
    assert result.meta.size == 5


async def test_get_missing_object_is_not_found(store):
    with pytest.raises(NotFoundError) as exc_info:
        await store.get("missing")
    assert exc_info.value.path == "missing"


async def test_exists(store, server):
    server.write("here", b"")
    assert await store.exists("here")
    assert not await store.exists("not-here")


async def test_bounded_range(store, server):
    server.write("obj", b"0123456789")

    assert await store.get_range("obj", 2, 5) == b"234"
    assert server.requests[-1].headers["range"] == "bytes=2-4"


@pytest.mark.parametrize(
    ("get_range", "header", "expected", "byte_range"),
    [
        (GetRange.offset(7), "bytes=7-", b"789", (7, 10)),
        (GetRange.suffix(3), "bytes=-3", b"789", (7, 10)),
        (GetRange.bounded(0, 1), "bytes=0-0", b"0", (0, 1)),
    ],
)
async def test_range_kinds(store, server, get_range, header, expected, byte_range):
    server.write("obj", b"0123456789")

    result = await store.get("obj", GetOptions(range=get_range))

    assert server.requests[-1].headers["range"] == header
    assert result.payload == expected
    # Size is the full object size taken from Content-Range
    assert result.meta.size == 10
    assert result.range == byte_range


def test_empty_bounded_range_is_rejected():
    with pytest.raises(ValueError):
        GetRange.bounded(5, 5)


async def test_if_none_match_current_etag_is_not_modified(store, server):
    obj = server.write("obj", b"data")

    with pytest.raises(NotModifiedError):
        await store.get("obj", GetOptions(if_none_match=obj.etag))

    # 304 is never retried
    assert len(server.requests) == 1


async def test_if_match_stale_etag_is_precondition_error(store, server):
    server.write("obj", b"data")

    with pytest.raises(PreconditionError):
        await store.get("obj", GetOptions(if_match='"stale"'))


async def test_conditional_date_headers(store, server):
    server.write("obj", b"data")
    when = datetime(2024, 5, 6, 7, 8, 9, tzinfo=timezone.utc)

    await store.get("obj", GetOptions(if_modified_since=when, if_unmodified_since=when))

    headers = server.requests[-1].headers
    assert headers["if-modified-since"] == "Mon, 06 May 2024 07:08:09 GMT"
    assert headers["if-unmodified-since"] == "Mon, 06 May 2024 07:08:09 GMT"


async def test_get_specific_generation(store, server):
    obj = server.write("obj", b"data")

    result = await store.get("obj", GetOptions(version=str(obj.generation)))
    assert result.payload == b"data"
    assert server.requests[-1].url.params["generation"] == str(obj.generation)

    with pytest.raises(NotFoundError):
        await store.get("obj", GetOptions(version="1"))


async def test_get_is_retried_on_server_error(store, server):
    server.write("obj", b"data")
    server.fail_next = [500, 429]

    result = await store.get("obj")

    assert result.payload == b"data"
    assert len(server.requests) == 3


def _store_with_headers(config, headers: dict[str, str]) -> GoogleCloudStorage:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers=headers, content=b"abc")

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GoogleCloudStorage.from_config(config, http_client=http_client)


@pytest.mark.parametrize(
    "headers",
    [
        {"last-modified": "Tue, 02 Jan 2024 03:04:05 GMT"},
        {"etag": '"abc"'},
        {"etag": '"abc"', "last-modified": "not a date"},
    ],
)
async def test_missing_or_invalid_metadata_headers(config, headers):
    store = _store_with_headers(config, headers)

    with pytest.raises(MetadataError):
        await store.get("obj")


async def test_invalid_content_range_is_metadata_error(config):
    store = _store_with_headers(
        config,
        {"etag": '"abc"', "last-modified": "Tue, 02 Jan 2024 03:04:05 GMT", "content-range": "bytes 0-2/lots"},
    )

    with pytest.raises(MetadataError):
        await store.get("obj")
