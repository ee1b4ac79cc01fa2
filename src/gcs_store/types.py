"""Type definitions for gcs-store."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal, Union

# Opaque session id returned by a multipart initiate call
MultipartId = str

# Request-scoped extension data handed to httpx untouched
Extensions = dict[str, Any]


class Attribute(str, Enum):
    """Object attributes that map 1:1 onto standard HTTP headers."""

    CACHE_CONTROL = "cache-control"
    CONTENT_DISPOSITION = "content-disposition"
    CONTENT_ENCODING = "content-encoding"
    CONTENT_LANGUAGE = "content-language"
    CONTENT_TYPE = "content-type"


@dataclass(frozen=True)
class Metadata:
    """User-defined metadata attribute, keyed by its header suffix."""

    key: str


Attributes = dict[Union[Attribute, Metadata], str]


@dataclass(frozen=True)
class UpdateVersion:
    """Expected current version for a conditional update."""

    e_tag: str | None = None
    version: str | None = None


# "overwrite": unconditional write
# "create": fail if the object exists
# UpdateVersion: fail unless the current generation equals version
PutMode = Union[Literal["overwrite", "create"], UpdateVersion]


class PutPayload:
    """Byte content for an upload, kept as a list of chunks.

    The payload may be empty. ``content_length`` is the sum of the chunk sizes
    and is what ends up in the ``Content-Length`` header.
    """

    __slots__ = ("_chunks",)

    def __init__(self, data: bytes | bytearray | memoryview | Iterable[bytes] | None = None) -> None:
        if data is None:
            self._chunks: tuple[bytes, ...] = ()
        elif isinstance(data, (bytes, bytearray, memoryview)):
            self._chunks = (bytes(data),) if len(data) else ()
        else:
            self._chunks = tuple(bytes(chunk) for chunk in data if len(chunk))

    @property
    def content_length(self) -> int:
        return sum(len(chunk) for chunk in self._chunks)

    def __len__(self) -> int:
        return self.content_length

    def __iter__(self) -> Iterator[bytes]:
        return iter(self._chunks)

    def __bytes__(self) -> bytes:
        return b"".join(self._chunks)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, PutPayload):
            return bytes(self) == bytes(other)
        if isinstance(other, (bytes, bytearray)):
            return bytes(self) == bytes(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"PutPayload(content_length={self.content_length})"


PayloadLike = Union[PutPayload, bytes, bytearray, memoryview]


def as_payload(data: PayloadLike | None) -> PutPayload:
    """Coerce bytes-like data into a :class:`PutPayload`."""
    if isinstance(data, PutPayload):
        return data
    return PutPayload(data)


@dataclass(frozen=True)
class PutResult:
    """Server-assigned identity of a written object."""

    e_tag: str | None = None
    version: str | None = None


@dataclass(frozen=True)
class PartId:
    """Identifier of one uploaded multipart part (its response etag)."""

    content_id: str


@dataclass
class PutOptions:
    """Options for a single-request put."""

    mode: PutMode = "overwrite"
    attributes: Attributes = field(default_factory=dict)
    extensions: Extensions = field(default_factory=dict)


@dataclass
class PutMultipartOptions:
    """Options for initiating a multipart upload."""

    attributes: Attributes = field(default_factory=dict)
    extensions: Extensions = field(default_factory=dict)


@dataclass(frozen=True)
class GetRange:
    """Byte range of a get request.

    Use :meth:`bounded`, :meth:`offset` or :meth:`suffix` to build one.
    """

    kind: Literal["bounded", "offset", "suffix"]
    start: int = 0
    end: int | None = None

    @classmethod
    def bounded(cls, start: int, end: int) -> GetRange:
        """Bytes ``start`` (inclusive) to ``end`` (exclusive)."""
        if start >= end:
            raise ValueError(f"Range started at {start} and ended at {end}")
        return cls("bounded", start, end)

    @classmethod
    def offset(cls, start: int) -> GetRange:
        """All bytes from ``start`` to the end of the object."""
        return cls("offset", start)

    @classmethod
    def suffix(cls, length: int) -> GetRange:
        """The last ``length`` bytes of the object."""
        return cls("suffix", length)

    def to_header(self) -> str:
        if self.kind == "bounded":
            assert self.end is not None
            return f"bytes={self.start}-{self.end - 1}"
        if self.kind == "offset":
            return f"bytes={self.start}-"
        return f"bytes=-{self.start}"

    def as_range(self, size: int) -> tuple[int, int]:
        """Resolve against an object of ``size`` bytes, returning ``(start, end)``."""
        if self.kind == "bounded":
            assert self.end is not None
            return self.start, min(self.end, size)
        if self.kind == "offset":
            return min(self.start, size), size
        return max(size - self.start, 0), size


@dataclass
class GetOptions:
    """Options for a get or head request."""

    if_match: str | None = None
    if_none_match: str | None = None
    if_modified_since: datetime | None = None
    if_unmodified_since: datetime | None = None
    range: GetRange | None = None
    version: str | None = None
    head: bool = False
    extensions: Extensions = field(default_factory=dict)


@dataclass(frozen=True)
class ObjectMeta:
    """Metadata of a stored object."""

    location: str
    last_modified: datetime
    size: int
    e_tag: str | None = None
    version: str | None = None


@dataclass
class GetResult:
    """Result of a get request."""

    meta: ObjectMeta
    range: tuple[int, int]
    attributes: Attributes
    payload: bytes = b""


@dataclass
class ListResult:
    """Objects and common prefixes of a listing."""

    objects: list[ObjectMeta] = field(default_factory=list)
    common_prefixes: list[str] = field(default_factory=list)


@dataclass
class PaginatedListOptions:
    """Options for a single page of a bucket listing."""

    offset: str | None = None
    delimiter: str | None = None
    max_keys: int | None = None
    page_token: str | None = None
    extensions: Extensions = field(default_factory=dict)


@dataclass
class PaginatedListResult:
    """One page of a bucket listing; ``page_token`` is set iff more pages exist."""

    result: ListResult
    page_token: str | None = None
